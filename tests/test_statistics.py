# tests/test_statistics.py

"""
Ce qu'on teste :
→ Médiane et quartiles par rang
→ Semaine en cours / semaine précédente (lundi → dimanche)
→ Valeurs aberrantes exclues de la moyenne filtrée, pas de la médiane
→ Techniciens de la semaine, triés par nombre de SAV
→ Tendance mensuelle sur 6 mois
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from services.statistics import (
    STATS_SELECT,
    UNASSIGNED_LABEL,
    compute_statistics,
    fetch_statistics,
    median,
    quartiles,
    week_bounds,
)

from conftest import make_supabase

PARIS = ZoneInfo("Europe/Paris")

# Mercredi
NOW = datetime(2025, 3, 12, 10, 0, tzinfo=PARIS)


def _completed(id, requested_at, resolved_at, interventions=None, **extra):
    return {
        "id": id,
        "status": "terminee",
        "requested_at": requested_at,
        "resolved_at": resolved_at,
        "interventions": interventions or [],
        **extra,
    }


@pytest.fixture
def statistics_requests():
    return [
        # 10 jours, terminée cette semaine, intervention rapide
        _completed(
            "r1", "2025-03-01T09:00:00+01:00", "2025-03-11T09:00:00+01:00",
            [{"technician_id": "u1", "started_at": "2025-03-03T10:00:00+01:00"}],
            is_quick_intervention=True,
        ),
        # 2 jours, terminée la semaine dernière
        _completed(
            "r2", "2025-03-04T09:00:00+01:00", "2025-03-06T09:00:00+01:00",
            [{"technician_id": "u2", "started_at": "2025-03-05T09:00:00+01:00"}],
        ),
        # 1 jour (47 h tronquées), cette semaine, deux techniciens
        _completed(
            "r3", "2025-03-10T09:00:00+01:00", "2025-03-12T08:00:00+01:00",
            [{"technician_id": "u1"}, {"technician_id": "u_parti"}],
        ),
        # 81 jours : valeur aberrante
        _completed("r4", "2024-12-01T09:00:00+01:00", "2025-02-20T09:00:00+01:00"),
        _completed("r5", "2025-01-06T09:00:00+01:00", "2025-01-09T09:00:00+01:00"),
        _completed("r6", "2025-01-13T09:00:00+01:00", "2025-01-15T09:00:00+01:00"),
        {"id": "a1", "status": "nouvelle", "priority": True},
        {"id": "a2", "status": "en_cours", "priority": False},
        {"id": "z1", "status": "archivee"},
    ]


class TestStatisticsHelpers:

    def test_median(self):
        assert median([]) == 0
        assert median([5, 1, 3]) == 3
        assert median([10, 1, 2, 3]) == 2.5

    def test_quartiles_by_rank(self):
        assert quartiles([]) == (0, 0, 0)
        assert quartiles([81, 1, 2, 2, 3, 10]) == (2, 10, 8)

    def test_week_starts_on_monday(self):
        start, end = week_bounds(NOW)
        assert start == datetime(2025, 3, 10, tzinfo=PARIS)
        assert end == datetime(2025, 3, 17, tzinfo=PARIS)

        last_start, _ = week_bounds(NOW, weeks_ago=1)
        assert last_start == datetime(2025, 3, 3, tzinfo=PARIS)


class TestComputeStatistics:

    def setup_method(self):
        self.users = [{"id": "u1", "display_name": "Paul"}]

    def test_counts(self, statistics_requests):
        stats = compute_statistics(statistics_requests, self.users, NOW)

        assert stats.active_sav_count == 2
        assert stats.completed_this_week == 2
        assert stats.completed_last_week == 1
        assert stats.status_distribution == {"nouvelle": 1, "en_cours": 1, "terminee": 6}
        assert stats.priority_distribution == {"high": 1, "normal": 1}

    def test_resolution_times_and_outliers(self, statistics_requests):
        resolution = compute_statistics(statistics_requests, self.users, NOW).resolution_time_stats

        # durées : 1, 2, 2, 3, 10, 81
        assert resolution.median_time == 2.5
        assert resolution.q1 == 2
        assert resolution.q3 == 10
        assert resolution.iqr == 8
        assert resolution.outliers_excluded == 1
        assert resolution.avg_time_raw == pytest.approx(16.5)
        assert resolution.avg_time_filtered == pytest.approx(3.6)

    def test_response_time_and_quick_rate(self, statistics_requests):
        stats = compute_statistics(statistics_requests, self.users, NOW)

        assert stats.avg_response_time == 1.5
        assert stats.quick_intervention_rate == pytest.approx(100 / 3)

    def test_technicians_of_the_week(self, statistics_requests):
        technicians = compute_statistics(statistics_requests, self.users, NOW).technician_stats

        assert [(t.technician_name, t.sav_count) for t in technicians] == [
            ("Paul", 2),
            (UNASSIGNED_LABEL, 1),
        ]
        assert technicians[0].avg_resolution_time == 5.5

    def test_monthly_trend(self, statistics_requests):
        trend = compute_statistics(statistics_requests, self.users, NOW).monthly_resolution_trend

        assert [m.month for m in trend] == [
            "oct. 2024", "nov. 2024", "déc. 2024", "janv. 2025", "févr. 2025", "mars 2025",
        ]
        assert [m.count for m in trend] == [0, 0, 0, 2, 1, 3]
        assert [m.median_time for m in trend] == [0, 0, 0, 2.5, 81, 2]

    def test_completion_falls_back_to_created_at(self):
        requests = [{"id": "x", "status": "terminee", "created_at": "2025-03-11T15:00:00+01:00"}]

        stats = compute_statistics(requests, [], NOW)

        assert stats.completed_this_week == 1
        assert stats.resolution_time_stats.median_time == 0

    def test_empty(self):
        stats = compute_statistics([], [], NOW)

        assert stats.active_sav_count == 0
        assert stats.avg_resolution_time == 0
        assert stats.technician_stats == []
        assert len(stats.monthly_resolution_trend) == 6


class TestFetchStatistics:

    def test_reads_requests_and_users(self, statistics_requests):
        client = make_supabase({
            "sav_requests": statistics_requests,
            "users": [{"id": "u1", "display_name": "Paul"}],
        })

        stats = fetch_statistics(client, now=NOW)

        assert stats.completed_this_week == 2
        client.table("sav_requests").select.assert_called_once_with(STATS_SELECT)
        client.table("sav_requests").order.assert_called_once_with("requested_at", desc=True)

    def test_backend_error_raises(self):
        client = make_supabase(errors={"sav_requests": RuntimeError("timeout")})
        with pytest.raises(RuntimeError):
            fetch_statistics(client, now=NOW)
