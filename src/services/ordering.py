# services/ordering.py

"""
Tri côté client des listes SAV et contrats.

Un tri = une liste ordonnée de comparateurs.
Le premier comparateur qui ne renvoie pas 0 décide,
sinon on passe au suivant. Aucune pondération numérique.

    sort_with(requests, REQUEST_ORDERING)
"""

from functools import cmp_to_key
from typing import Callable, Iterable

from models import parse_timestamp

Comparator = Callable[[dict, dict], int]


# ─────────────────────────────────────────
# MÉCANIQUE
# ─────────────────────────────────────────

def chain(*comparators: Comparator) -> Comparator:
    def compare(a: dict, b: dict) -> int:
        for comparator in comparators:
            result = comparator(a, b)
            if result:
                return result
        return 0
    return compare


def sort_with(items: Iterable[dict], comparators) -> list:
    """Tri stable : les ex-aequo gardent l'ordre renvoyé par la base."""
    return sorted(items, key=cmp_to_key(chain(*comparators)))


def flag_first(predicate: Callable[[dict], bool]) -> Comparator:
    """Les éléments qui vérifient le prédicat passent devant."""
    def compare(a: dict, b: dict) -> int:
        pa, pb = bool(predicate(a)), bool(predicate(b))
        if pa == pb:
            return 0
        return -1 if pa else 1
    return compare


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _timestamp(row: dict, key: str) -> float:
    parsed = parse_timestamp(row.get(key))
    return parsed.timestamp() if parsed else 0.0


def _text(value) -> str:
    return (value or "").casefold()


# ─────────────────────────────────────────
# DEMANDES SAV
# ─────────────────────────────────────────

def _not_terminated(row: dict) -> bool:
    return row.get("status") != "terminee"


def by_priority(a: dict, b: dict) -> int:
    return flag_first(lambda r: r.get("priority"))(a, b)


def by_active_contract(a: dict, b: dict) -> int:
    return flag_first(
        lambda r: r.get("has_maintenance_contract") and _not_terminated(r)
    )(a, b)


def by_active_urgent(a: dict, b: dict) -> int:
    return flag_first(
        lambda r: r.get("urgent") and _not_terminated(r)
    )(a, b)


def by_requested_at_desc(a: dict, b: dict) -> int:
    return _cmp(_timestamp(b, "requested_at"), _timestamp(a, "requested_at"))


REQUEST_ORDERING = (
    by_priority,
    by_active_contract,
    by_active_urgent,
    by_requested_at_desc,
)


def sort_requests(requests: Iterable[dict]) -> list:
    return sort_with(requests, REQUEST_ORDERING)


# ─────────────────────────────────────────
# CONTRATS DE MAINTENANCE
# ─────────────────────────────────────────

CONTRACT_STATUS_RANK = {"a_realiser": 0, "prevue": 1, "realisee": 2}
UNKNOWN_STATUS_RANK = 3


def by_open_priority(a: dict, b: dict) -> int:
    return flag_first(
        lambda r: r.get("priority") and r.get("status") != "realisee"
    )(a, b)


def by_status_rank(a: dict, b: dict) -> int:
    return _cmp(
        CONTRACT_STATUS_RANK.get(a.get("status"), UNKNOWN_STATUS_RANK),
        CONTRACT_STATUS_RANK.get(b.get("status"), UNKNOWN_STATUS_RANK),
    )


def _assigned_label(row: dict) -> str:
    user = row.get("assigned_user") or {}
    return user.get("display_name") or user.get("email") or ""


# champ de tri → clé de comparaison
_CONTRACT_SORT_KEYS = {
    "client_name": lambda r: _text(r.get("client_name")),
    "created_at": lambda r: _timestamp(r, "created_at"),
    "battery_installation_year": lambda r: r.get("battery_installation_year") or 0,
    "city_derived": lambda r: _text(r.get("city_derived")),
    "assigned_user_id": lambda r: _text(_assigned_label(r)),
}


def contract_ordering(sort: str = "client_name", order: str = "asc") -> tuple:
    """
    Priorité non réalisée d'abord, puis le champ choisi dans le filtre.
    Pour client_name, le rang de statut passe avant le nom
    et ignore le sens du tri.
    """
    direction = 1 if order == "asc" else -1
    key = _CONTRACT_SORT_KEYS.get(sort)

    def by_selected_field(a: dict, b: dict) -> int:
        if key is None:
            return 0
        return _cmp(key(a), key(b)) * direction

    if sort == "client_name":
        return (by_open_priority, by_status_rank, by_selected_field)

    return (by_open_priority, by_selected_field)


def sort_contracts(
    contracts: Iterable[dict],
    sort: str = "client_name",
    order: str = "asc"
) -> list:
    return sort_with(contracts, contract_ordering(sort, order))
