# services/statistics.py

"""
Statistiques du tableau de bord SAV.

→ semaine du lundi au dimanche, en heure locale
→ temps de résolution = jours entiers entre requested_at et resolved_at (plancher 0)
→ valeur aberrante = au-delà de q3 + 1.5 * iqr, exclue de la moyenne filtrée seulement
→ tendance : médiane par mois de résolution, sur les 6 derniers mois
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from models import (
    MonthlyResolution,
    ResolutionTimeStats,
    SavStatistics,
    TechnicianStats,
    parse_timestamp,
)
from services.extrabat_payloads import local_timezone

logger = logging.getLogger(__name__)

STATS_SELECT = "*, interventions:sav_interventions(*)"

TREND_MONTHS = 6
OUTLIER_FACTOR = 1.5
UNASSIGNED_LABEL = "Non assigné"

MONTH_ABBREVIATIONS = (
    "janv.", "févr.", "mars", "avr.", "mai", "juin",
    "juil.", "août", "sept.", "oct.", "nov.", "déc.",
)


# ─────────────────────────────────────────
# OUTILS STATISTIQUES
# ─────────────────────────────────────────

def median(values: list) -> float:
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def quartiles(values: list) -> tuple:
    """Quartiles par rang (n/4 et 3n/4), sans interpolation. Renvoie (q1, q3, iqr)."""
    if not values:
        return 0, 0, 0
    ordered = sorted(values)
    q1 = ordered[len(ordered) // 4]
    q3 = ordered[(len(ordered) * 3) // 4]
    return q1, q3, q3 - q1


def _mean(values: list) -> float:
    return sum(values) / len(values) if values else 0


# ─────────────────────────────────────────
# DATES
# ─────────────────────────────────────────

def _to_local(value) -> Optional[datetime]:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    tz = local_timezone()
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return max(0, (end - start).days)


def resolution_days(request: dict) -> Optional[int]:
    return days_between(
        _to_local(request.get("requested_at")),
        _to_local(request.get("resolved_at")),
    )


def completion_date(request: dict) -> Optional[datetime]:
    # Anciennes demandes terminées sans resolved_at : on retombe sur created_at
    return _to_local(request.get("resolved_at") or request.get("created_at"))


def week_bounds(now: datetime, weeks_ago: int = 0) -> tuple:
    """[lundi 00:00, lundi suivant 00:00[ en heure locale."""
    local = _to_local(now)
    monday = (local - timedelta(days=local.weekday(), weeks=weeks_ago)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return monday, monday + timedelta(days=7)


def month_bounds(now: datetime, months_ago: int = 0) -> tuple:
    local = _to_local(now)
    index = local.year * 12 + (local.month - 1) - months_ago
    start = local.replace(
        year=index // 12, month=index % 12 + 1, day=1,
        hour=0, minute=0, second=0, microsecond=0,
    )
    following = index + 1
    end = start.replace(year=following // 12, month=following % 12 + 1)
    return start, end


def month_label(start: datetime) -> str:
    return f"{MONTH_ABBREVIATIONS[start.month - 1]} {start.year}"


def _within(moment: Optional[datetime], bounds: tuple) -> bool:
    return moment is not None and bounds[0] <= moment < bounds[1]


# ─────────────────────────────────────────
# CALCUL
# ─────────────────────────────────────────

def compute_statistics(requests: list, users: list, now: datetime) -> SavStatistics:
    active = [r for r in requests if r.get("status") in ("nouvelle", "en_cours")]
    completed = [r for r in requests if r.get("status") == "terminee"]

    this_week = week_bounds(now)
    last_week = week_bounds(now, weeks_ago=1)
    completed_this_week = [r for r in completed if _within(completion_date(r), this_week)]
    completed_last_week = [r for r in completed if _within(completion_date(r), last_week)]

    resolution_times = [
        days for days in map(resolution_days, completed) if days is not None
    ]

    return SavStatistics(
        active_sav_count=len(active),
        avg_resolution_time=_mean(resolution_times),
        completed_this_week=len(completed_this_week),
        completed_last_week=len(completed_last_week),
        technician_stats=_technician_stats(completed_this_week, users),
        status_distribution={
            status: sum(1 for r in requests if r.get("status") == status)
            for status in ("nouvelle", "en_cours", "terminee")
        },
        priority_distribution={
            "high": sum(1 for r in active if r.get("priority")),
            "normal": sum(1 for r in active if not r.get("priority")),
        },
        avg_response_time=_avg_response_time(completed),
        quick_intervention_rate=_quick_intervention_rate(completed),
        resolution_time_stats=_resolution_time_stats(resolution_times),
        monthly_resolution_trend=_monthly_trend(completed, now),
    )


def _resolution_time_stats(times: list) -> ResolutionTimeStats:
    q1, q3, iqr = quartiles(times)
    upper_bound = q3 + OUTLIER_FACTOR * iqr
    filtered = [t for t in times if t <= upper_bound]

    return ResolutionTimeStats(
        median_time=median(times),
        avg_time_filtered=_mean(filtered),
        avg_time_raw=_mean(times),
        outliers_excluded=len(times) - len(filtered),
        q1=q1,
        q3=q3,
        iqr=iqr,
    )


def _first_intervention(request: dict) -> Optional[dict]:
    started = [
        i for i in (request.get("interventions") or [])
        if _to_local(i.get("started_at")) is not None
    ]
    if not started:
        return None
    return min(started, key=lambda i: _to_local(i.get("started_at")))


def _avg_response_time(completed: list) -> float:
    """Délai de réponse : demande → début de la première intervention."""
    response_times = []
    for request in completed:
        first = _first_intervention(request)
        if first is None:
            continue
        days = days_between(
            _to_local(request.get("requested_at")),
            _to_local(first.get("started_at")),
        )
        if days is not None:
            response_times.append(days)
    return _mean(response_times)


def _quick_intervention_rate(completed: list) -> float:
    with_interventions = [r for r in completed if r.get("interventions")]
    if not with_interventions:
        return 0
    quick = sum(1 for r in with_interventions if r.get("is_quick_intervention"))
    return quick / len(with_interventions) * 100


def _technician_stats(completed_this_week: list, users: list) -> list:
    names = {user.get("id"): user.get("display_name") for user in users}
    per_technician: dict = {}

    for request in completed_this_week:
        days = resolution_days(request)
        for intervention in request.get("interventions") or []:
            technician_id = intervention.get("technician_id")
            if not technician_id:
                continue
            entry = per_technician.setdefault(technician_id, {
                "name": names.get(technician_id) or UNASSIGNED_LABEL,
                "count": 0,
                "total": 0,
            })
            entry["count"] += 1
            entry["total"] += days or 0

    stats = [
        TechnicianStats(
            technician_name=entry["name"],
            sav_count=entry["count"],
            avg_resolution_time=entry["total"] / entry["count"],
        )
        for entry in per_technician.values()
    ]
    return sorted(stats, key=lambda s: s.sav_count, reverse=True)


def _monthly_trend(completed: list, now: datetime) -> list:
    trend = []
    for months_ago in range(TREND_MONTHS - 1, -1, -1):
        bounds = month_bounds(now, months_ago)
        in_month = [
            r for r in completed
            if _within(_to_local(r.get("resolved_at")), bounds)
        ]
        times = [days for days in map(resolution_days, in_month) if days is not None]
        trend.append(MonthlyResolution(
            month=month_label(bounds[0]),
            median_time=median(times),
            count=len(in_month),
        ))
    return trend


# ─────────────────────────────────────────
# CHARGEMENT
# ─────────────────────────────────────────

def fetch_statistics(client, now: Optional[datetime] = None) -> SavStatistics:
    """Lit toutes les demandes et les techniciens, puis calcule. Les erreurs Supabase remontent."""
    now = now or datetime.now(tz=local_timezone())

    requests = (
        client.table("sav_requests")
        .select(STATS_SELECT)
        .order("requested_at", desc=True)
        .execute()
    )
    users = client.table("users").select("id, display_name").execute()

    stats = compute_statistics(requests.data or [], users.data or [], now)
    logger.info(
        f"Statistiques SAV : {stats.active_sav_count} actives, "
        f"{stats.completed_this_week} terminées cette semaine"
    )
    return stats
