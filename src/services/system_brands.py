# services/system_brands.py

import logging
from typing import Optional

from models import OTHER_BRAND, SystemBrand, from_row
from services.database import is_unique_violation

logger = logging.getLogger(__name__)

FETCH_ERROR = "Erreur lors du chargement des marques"
DUPLICATE_ERROR = "Cette marque existe déjà"
ADD_ERROR = "Erreur lors de l'ajout de la marque"


class BrandCatalog:
    """
    Catalogue marques → modèles.
    Les utilisateurs peuvent ajouter une marque à la volée depuis les formulaires.
    """

    def __init__(self, client):
        self.client = client
        self.brands: list[SystemBrand] = []
        self.error: Optional[str] = None

    def fetch(self) -> list[SystemBrand]:
        try:
            result = (
                self.client.table("system_brands")
                .select("*")
                .order("brand_name")
                .execute()
            )
            self.brands = [from_row(SystemBrand, row) for row in (result.data or [])]
            self.error = None
        except Exception as e:
            logger.error(f"Erreur chargement marques : {e}")
            self.error = FETCH_ERROR

        return self.brands

    def add_custom_brand(self, name: str) -> bool:
        try:
            self.client.table("system_brands").insert({
                "brand_name": name,
                "models": [],
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                self.error = DUPLICATE_ERROR
            else:
                logger.error(f"Erreur ajout marque {name} : {e}")
                self.error = ADD_ERROR
            return False

        self.fetch()
        self.error = None
        logger.info(f"Marque ajoutée : {name}")
        return True

    def get_all_brands(self) -> list[str]:
        return [brand.brand_name for brand in self.brands] + [OTHER_BRAND]

    def get_models_for_brand(self, brand_name: str) -> Optional[list[str]]:
        brand = next((b for b in self.brands if b.brand_name == brand_name), None)
        if brand is None or not brand.models:
            return None
        return brand.models

    def fetch_system_info_for_client(
        self,
        client_name: str,
        system_type: Optional[str] = None
    ) -> Optional[dict]:
        """
        Dernière marque/modèle connus pour ce client :
        d'abord dans les SAV, sinon dans les contrats.
        """
        try:
            for table in ("sav_requests", "maintenance_contracts"):
                query = (
                    self.client.table(table)
                    .select("system_brand, system_model")
                    .eq("client_name", client_name)
                    .not_.is_("system_brand", "null")
                )
                if system_type:
                    query = query.eq("system_type", system_type)

                result = query.order("created_at", desc=True).limit(1).execute()
                row = result.data[0] if result.data else None

                if row and row.get("system_brand"):
                    return {
                        "system_brand": row["system_brand"],
                        "system_model": row.get("system_model") or None,
                    }

            return None

        except Exception as e:
            logger.error(f"Erreur infos système pour {client_name} : {e}")
            return None
