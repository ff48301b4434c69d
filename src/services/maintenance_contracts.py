# services/maintenance_contracts.py

import logging
from typing import Callable, Optional

from models import BILLING_FIELDS, MaintenanceFilters
from services.database import (
    TABLES_MISSING_MESSAGE,
    clean_payload,
    error_message,
    is_table_not_found_error,
    load_intervention_details,
)
from services.fetch_guard import FetchSequencer
from services.ordering import sort_contracts
from services.sav_requests import derive_city

logger = logging.getLogger(__name__)

CONTRACT_SELECT = """
    *,
    assigned_user:assigned_user_id(id, display_name, email),
    interventions:maintenance_interventions(
        *,
        technician:technician_id(id, display_name, email)
    )
"""


class MaintenanceContractStore:
    """
    Liste des contrats de maintenance.
    Même contrat que SavRequestStore : fetch() ne lève pas,
    les mutations lèvent et rechargent la liste.
    """

    def __init__(self, client, session=None):
        self.client = client
        self.session = session
        self.filters = MaintenanceFilters()

        self.contracts: list = []
        self.loading = False
        self.error: Optional[str] = None
        self.tables_exist = True

        self._sequencer = FetchSequencer()

    # ─────────────────────────────────────────
    # LECTURE
    # ─────────────────────────────────────────

    def fetch(self, filters: Optional[MaintenanceFilters] = None) -> list:
        if filters is not None:
            self.filters = filters

        tag = self._sequencer.issue()
        filters = self.filters

        self.loading = True
        self.error = None

        try:
            result = self._build_query(filters).execute()

            if not self._sequencer.is_current(tag):
                return self.contracts

            rows = [
                {
                    **row,
                    "interventions": load_intervention_details(
                        self.client,
                        row.get("interventions") or [],
                        technicians_table="maintenance_intervention_technicians",
                        parent_column="maintenance_intervention_id",
                        intervention_type="maintenance",
                    ),
                }
                for row in (result.data or [])
            ]
            ordered = sort_contracts(
                rows,
                sort=filters.sort or "client_name",
                order=filters.order or "asc",
            )

            self._sequencer.apply(tag, self._set_contracts, ordered)

        except Exception as e:
            if self._sequencer.is_current(tag):
                if is_table_not_found_error(e):
                    self.tables_exist = False
                    self.error = TABLES_MISSING_MESSAGE
                    self.contracts = []
                else:
                    logger.error(f"Erreur chargement contrats : {e}")
                    self.error = error_message(e) or "An error occurred"

        finally:
            if self._sequencer.is_current(tag):
                self.loading = False

        return self.contracts

    def refetch(self) -> list:
        return self.fetch()

    def _set_contracts(self, contracts: list) -> None:
        self.contracts = contracts
        self.tables_exist = True

    def _build_query(self, filters: MaintenanceFilters):
        query = self.client.table("maintenance_contracts").select(CONTRACT_SELECT)

        if filters.q:
            query = query.or_(
                f"client_name.ilike.%{filters.q}%,city_derived.ilike.%{filters.q}%"
            )
        if filters.user_id:
            query = query.eq("assigned_user_id", filters.user_id)
        if filters.city:
            query = query.eq("city_derived", filters.city)
        if filters.system_type:
            query = query.eq("system_type", filters.system_type)
        if filters.status:
            query = query.eq("status", filters.status)
        if filters.priority is not None:
            query = query.eq("priority", filters.priority)

        sort = filters.sort or "client_name"
        order = filters.order or "asc"
        return query.order(sort, desc=(order != "asc"))

    # ─────────────────────────────────────────
    # ÉCRITURE
    # ─────────────────────────────────────────

    def create(self, data: dict) -> dict:
        payload = self._writable(data)
        payload["city_derived"] = derive_city(payload.get("address"))
        payload.setdefault("status", "a_realiser")
        if self.session is not None and self.session.is_authenticated:
            payload["created_by"] = self.session.user_id

        result = self.client.table("maintenance_contracts").insert(payload).execute()
        self.refetch()
        return result.data[0] if result.data else {}

    def update(self, contract_id: str, data: dict) -> None:
        payload = self._writable(data)
        if "address" in payload:
            payload["city_derived"] = derive_city(payload["address"])
        self._update(contract_id, payload)

    def toggle_priority(self, contract_id: str) -> None:
        current = self.find(contract_id) or {}
        self._update(contract_id, {"priority": not current.get("priority")})

    def set_status(self, contract_id: str, status: str) -> None:
        self._update(contract_id, {"status": status})

    def mark_invoice_sent(self, contract_id: str, sent: bool = True) -> None:
        self._update(contract_id, self._writable({"invoice_sent": sent}))

    def mark_invoice_paid(self, contract_id: str, paid: bool = True) -> None:
        self._update(contract_id, self._writable({"invoice_paid": paid}))

    def delete(self, contract_id: str, confirm: Callable[[], bool]) -> bool:
        if not confirm():
            return False

        self.client.table("maintenance_contracts").delete().eq("id", contract_id).execute()
        logger.info(f"Contrat supprimé : {contract_id}")
        self.refetch()
        return True

    def find(self, contract_id: str) -> Optional[dict]:
        return next((c for c in self.contracts if c.get("id") == contract_id), None)

    def _writable(self, data: dict) -> dict:
        """Sans droit facturation, les champs de facturation ne sont jamais écrits."""
        payload = clean_payload(data)
        if self.session is None or not self.session.can_access_billing_info:
            payload = {k: v for k, v in payload.items() if k not in BILLING_FIELDS}
        return payload

    def _update(self, contract_id: str, payload: dict) -> None:
        if not payload:
            logger.warning(f"Mise à jour contrat {contract_id} sans champ autorisé")
            return
        self.client.table("maintenance_contracts").update(payload).eq("id", contract_id).execute()
        self.refetch()
