# services/batteries.py

import logging
from typing import Optional

from models import BatteryProduct, from_row
from services.database import error_message
from services.extrabat_proxy import handle_proxy_request

logger = logging.getLogger(__name__)


class BatteryService:
    """
    Catalogue piles/batteries et lignes posées par intervention.
    Sert à construire le devis Extrabat de remplacement.
    """

    def __init__(self, client):
        self.client = client
        self.products: list[BatteryProduct] = []
        self.error: Optional[str] = None

    def fetch_products(self) -> list[BatteryProduct]:
        try:
            result = (
                self.client.table("battery_products")
                .select("*")
                .eq("is_active", True)
                .order("name")
                .execute()
            )
            self.products = [from_row(BatteryProduct, row) for row in (result.data or [])]
        except Exception as e:
            logger.error(f"Erreur chargement batteries : {e}")
            self.error = error_message(e)

        return self.products

    def fetch_intervention_batteries(self, intervention_id: str, intervention_type: str) -> list:
        result = (
            self.client.table("intervention_batteries")
            .select("*, battery_product:battery_products(*)")
            .eq("intervention_id", intervention_id)
            .eq("intervention_type", intervention_type)
            .execute()
        )
        return result.data or []

    def save_intervention_batteries(
        self,
        intervention_id: str,
        intervention_type: str,
        selections: list[dict]
    ) -> dict:
        """
        Remplace les lignes de l'intervention : suppression puis insertion.
        Pas de transaction : un échec à l'insertion laisse l'intervention sans ligne.
        """
        try:
            (
                self.client.table("intervention_batteries")
                .delete()
                .eq("intervention_id", intervention_id)
                .eq("intervention_type", intervention_type)
                .execute()
            )

            if selections:
                self.client.table("intervention_batteries").insert([
                    {
                        "intervention_id": intervention_id,
                        "intervention_type": intervention_type,
                        "battery_product_id": s["battery_product_id"],
                        "quantity": s["quantity"],
                        "unit_price": s["unit_price"],
                    }
                    for s in selections
                ]).execute()

            return {"success": True}

        except Exception as e:
            logger.error(f"Erreur enregistrement batteries {intervention_id} : {e}")
            self.error = error_message(e)
            return {"success": False, "error": self.error}

    def create_extrabat_quote(
        self,
        client_extrabat_id,
        intervention_id: str,
        intervention_type: str
    ) -> dict:
        try:
            client_id = int(client_extrabat_id)
        except (TypeError, ValueError):
            self.error = f"Identifiant client Extrabat invalide : {client_extrabat_id!r}"
            logger.error(self.error)
            return {"success": False, "error": self.error}

        status, payload = handle_proxy_request(
            {
                "action": "createQuote",
                "clientId": client_id,
                "interventionId": intervention_id,
                "interventionType": intervention_type,
            },
            db_client_factory=lambda: self.client,
        )

        if status != 200 or not payload.get("success"):
            self.error = f"Erreur Extrabat: {payload.get('error')}"
            logger.error(self.error)
            return {"success": False, "error": self.error}

        data = payload.get("data")
        devis_id = payload.get("devisId") or (data.get("id") if isinstance(data, dict) else None)
        return {"success": True, "devisId": devis_id, "data": data}
