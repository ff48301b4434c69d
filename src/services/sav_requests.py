# services/sav_requests.py

import re
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from models import SavFilters
from services import sms
from services.database import (
    TABLES_MISSING_MESSAGE,
    clean_payload,
    error_message,
    is_table_not_found_error,
    load_intervention_details,
)
from services.fetch_guard import FetchSequencer
from services.session import NotAuthenticatedError
from services.ordering import sort_requests

logger = logging.getLogger(__name__)

SAV_SELECT = """
    *,
    assigned_user:assigned_user_id(id, display_name, email),
    interventions:sav_interventions(
        *,
        technician:technician_id(id, display_name, email)
    )
"""

_CITY_PATTERN = re.compile(r"\d{5}\s+([^,]+)")


def derive_city(address: Optional[str]) -> Optional[str]:
    """'12 rue X, 27000 Évreux' → 'Évreux'. None si pas de code postal."""
    if not address:
        return None
    match = _CITY_PATTERN.search(address)
    return match.group(1).strip() if match else None


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SavRequestStore:
    """
    Liste des demandes SAV telle que l'affiche le tableau de bord.

    État exposé : requests, loading, error, tables_exist.
    fetch() ne lève jamais : les erreurs finissent dans self.error.
    Les mutations lèvent, puis rechargent toute la liste.
    """

    def __init__(self, client, session=None):
        self.client = client
        self.session = session
        self.filters = SavFilters()

        self.requests: list = []
        self.loading = False
        self.error: Optional[str] = None
        self.tables_exist = True

        self._sequencer = FetchSequencer()

    # ─────────────────────────────────────────
    # LECTURE
    # ─────────────────────────────────────────

    def fetch(self, filters: Optional[SavFilters] = None) -> list:
        if filters is not None:
            self.filters = filters

        tag = self._sequencer.issue()
        filters = self.filters

        self.loading = True
        self.error = None

        try:
            result = self._build_query(filters).execute()

            if not self._sequencer.is_current(tag):
                logger.debug(f"Fetch SAV {tag} périmé — ignoré")
                return self.requests

            rows = [self._enrich(row) for row in (result.data or [])]
            ordered = sort_requests(rows)

            self._sequencer.apply(tag, self._set_requests, ordered)

        except Exception as e:
            if self._sequencer.is_current(tag):
                if is_table_not_found_error(e):
                    self.tables_exist = False
                    self.error = TABLES_MISSING_MESSAGE
                    self.requests = []
                else:
                    logger.error(f"Erreur chargement SAV : {e}")
                    self.error = error_message(e) or "An error occurred"

        finally:
            if self._sequencer.is_current(tag):
                self.loading = False

        return self.requests

    def refetch(self) -> list:
        return self.fetch()

    def list_cities(self) -> list[str]:
        result = (
            self.client.table("sav_requests")
            .select("city_derived")
            .not_.is_("city_derived", "null")
            .neq("city_derived", "")
            .execute()
        )
        return sorted({row["city_derived"] for row in (result.data or [])})

    def _set_requests(self, requests: list) -> None:
        self.requests = requests
        self.tables_exist = True

    def _build_query(self, filters: SavFilters):
        query = self.client.table("sav_requests").select(SAV_SELECT)

        if filters.q:
            query = query.or_(
                f"client_name.ilike.%{filters.q}%,city_derived.ilike.%{filters.q}%"
            )
        if filters.user_id:
            query = query.eq("assigned_user_id", filters.user_id)
        if filters.assigned_user_id:
            query = query.eq("assigned_user_id", filters.assigned_user_id)
        if filters.city:
            query = query.eq("city_derived", filters.city)
        if filters.system_type:
            query = query.eq("system_type", filters.system_type)

        if filters.status:
            if filters.status == "active":
                query = query.in_("status", ["nouvelle", "en_cours"])
            elif filters.status != "all":
                query = query.eq("status", filters.status)
        elif not filters.billing_status:
            # Par défaut : ni terminées ni archivées
            query = query.not_.in_("status", ["archivee", "terminee"])

        if filters.urgent is not None:
            query = query.eq("urgent", filters.urgent)

        if filters.billing_status:
            if filters.billing_status == "all":
                query = query.in_("status", ["terminee", "archivee"])
            else:
                query = query.eq("billing_status", filters.billing_status)
                if filters.billing_status == "billed":
                    query = query.eq("status", "archivee")
                elif filters.billing_status == "to_bill":
                    query = query.eq("status", "terminee")

        sort = filters.sort or "requested_at"
        order = filters.order or "desc"
        return query.order(sort, desc=(order != "asc"))

    def _enrich(self, row: dict) -> dict:
        contract = (
            self.client.table("maintenance_contracts")
            .select("id")
            .eq("client_name", row.get("client_name"))
            .limit(1)
            .execute()
        )

        interventions = load_intervention_details(
            self.client,
            row.get("interventions") or [],
            technicians_table="sav_intervention_technicians",
            parent_column="sav_intervention_id",
            intervention_type="sav",
        )

        return {
            **row,
            "has_maintenance_contract": bool(contract.data),
            "interventions": interventions,
        }

    # ─────────────────────────────────────────
    # ÉCRITURE
    # ─────────────────────────────────────────

    def create(self, data: dict) -> dict:
        if self.session is None:
            raise NotAuthenticatedError("User not authenticated")

        payload = clean_payload(data)
        record = {
            **payload,
            "city_derived": derive_city(payload.get("address")),
            "system_type": payload.get("system_type") or "autre",
            "status": "nouvelle",
            "priority": bool(payload.get("urgent")),
            "created_by": self.session.user_id,
        }

        result = self.client.table("sav_requests").insert(record).execute()
        self.refetch()

        created = result.data[0] if result.data else {}
        logger.info(f"SAV créé : {created.get('id')} — {record.get('client_name')}")
        return created

    def update(self, request_id: str, data: dict) -> None:
        payload = clean_payload(data)
        if "address" in payload:
            payload["city_derived"] = derive_city(payload["address"])
        self._update(request_id, payload)

    def mark_complete(self, request_id: str, notify_user=None) -> None:
        """
        notify_user : User à prévenir par SMS (best-effort, n'interrompt pas).
        """
        completed = self.find(request_id)

        self.client.table("sav_requests").update({
            "status": "terminee",
            "resolved_at": _now(),
        }).eq("id", request_id).execute()

        if completed and notify_user is not None and notify_user.phone:
            sms.notify(
                notify_user.phone,
                sav_data={
                    "client_name": completed.get("client_name"),
                    "system_type": completed.get("system_type"),
                    "urgent": completed.get("urgent"),
                    "problem_desc": completed.get("problem_desc"),
                },
                sms_type="completion",
            )

        self.refetch()

    def archive(self, request_id: str) -> None:
        self._update(request_id, {"status": "archivee", "archived_at": _now()})

    def toggle_priority(self, request_id: str) -> None:
        self._toggle(request_id, "priority")

    def toggle_quick_intervention(self, request_id: str) -> None:
        self._toggle(request_id, "is_quick_intervention")

    def toggle_long_intervention(self, request_id: str) -> None:
        self._toggle(request_id, "is_long_intervention")

    def mark_billed(self, request_id: str) -> None:
        now = _now()
        self._update(request_id, {
            "billing_status": "billed",
            "billed_at": now,
            "status": "archivee",
            "archived_at": now,
        })

    def reactivate(self, request_id: str) -> None:
        self._update(request_id, {
            "status": "en_cours",
            "billing_status": "to_bill",
            "archived_at": None,
            "billed_at": None,
        })

    def delete(self, request_id: str, confirm: Callable[[], bool]) -> bool:
        """
        Suppression définitive : rien n'est envoyé sans confirmation explicite.
        """
        if not confirm():
            return False

        self.client.table("sav_requests").delete().eq("id", request_id).execute()
        logger.info(f"SAV supprimé : {request_id}")
        self.refetch()
        return True

    def find(self, request_id: str) -> Optional[dict]:
        return next((r for r in self.requests if r.get("id") == request_id), None)

    def _toggle(self, request_id: str, flag: str) -> None:
        current = self.find(request_id) or {}
        self._update(request_id, {flag: not current.get(flag)})

    def _update(self, request_id: str, payload: dict) -> None:
        self.client.table("sav_requests").update(payload).eq("id", request_id).execute()
        self.refetch()

    def with_filters(self, **changes) -> list:
        return self.fetch(replace(self.filters, **changes))
