# connectors/crm/extrabat.py

import os
import logging
from typing import Any, Optional

from connectors.base import BaseConnector

logger = logging.getLogger(__name__)

EXTRABAT_BASE_URL = "https://api.extrabat.com"

CLIENT_INCLUDES = "ouvrage,ouvrage.ouvrage_metier,ouvrage.ouvrage_metier.article"

# Extrabat n'a pas de champ email unique : on prend le premier renseigné
EMAIL_FIELDS = ("email", "mail", "mail1", "emailfacturation", "mail_facturation")


class ExtrabatConnector(BaseConnector):
    """
    Client HTTP Extrabat (CRM / agenda / devis).
    Auth : deux secrets en header, pas d'OAuth.
    """

    REQUIRED_CREDENTIALS = ("api_key", "security")

    @classmethod
    def from_env(cls) -> "ExtrabatConnector":
        return cls({
            "api_key": os.environ.get("EXTRABAT_API_KEY", ""),
            "security": os.environ.get("EXTRABAT_SECURITY", ""),
        })

    def _get_source_name(self) -> str:
        return "extrabat"

    def _get_headers(self, json_body: bool = False) -> dict:
        headers = {
            "X-EXTRABAT-API-KEY": self.credentials["api_key"],
            "X-EXTRABAT-SECURITY": self.credentials["security"],
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _url(self, version: str, path: str) -> str:
        return f"{EXTRABAT_BASE_URL}/{version}/{path}"

    # ─────────────────────────────────────────
    # CLIENTS
    # ─────────────────────────────────────────

    def get_client_data(self, client_id: int) -> Any:
        """Fiche client avec ses ouvrages (installations) et articles."""
        url = self._url("v3", f"client/{client_id}")
        logger.info(f"[extrabat] Fiche client {client_id}")
        return self._request(
            "GET", url,
            params={"include": CLIENT_INCLUDES},
            headers=self._get_headers(),
        )

    def search_clients_by_name(self, name: str) -> list:
        data = self._request(
            "GET", self._url("v2", "clients"),
            params={"nomraisonsociale": name},
            headers=self._get_headers(),
        )
        return data if isinstance(data, list) else []

    def query(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        api_version: str = "v2"
    ) -> Any:
        """Lecture générique : GET /{version}/{endpoint}?params (None ignorés)."""
        clean_params = {
            key: str(value) for key, value in (params or {}).items()
            if value is not None
        }
        logger.info(f"[extrabat] GET {api_version}/{endpoint} {clean_params}")
        return self._request(
            "GET", self._url(api_version, endpoint),
            params=clean_params or None,
            headers=self._get_headers(),
        )

    @staticmethod
    def extract_email(client: dict) -> Optional[str]:
        for key in EMAIL_FIELDS:
            if client.get(key):
                return client[key]
        return None

    # ─────────────────────────────────────────
    # AGENDA
    # ─────────────────────────────────────────

    def save_appointment(
        self,
        appointment: dict,
        appointment_id: Optional[str] = None
    ) -> Any:
        """
        Création si appointment_id est None, sinon mise à jour.
        Extrabat attend un POST dans les deux cas.
        """
        path = "agenda/rendez-vous"
        if appointment_id:
            path = f"{path}/{appointment_id}"

        logger.info(
            f"[extrabat] {'Mise à jour' if appointment_id else 'Création'} "
            f"rendez-vous : {appointment.get('objet')}"
        )
        return self._request(
            "POST", self._url("v1", path),
            json=appointment,
            headers=self._get_headers(json_body=True),
        )

    def delete_appointment(self, appointment_id: str) -> Any:
        logger.info(f"[extrabat] Suppression rendez-vous {appointment_id}")
        return self._request(
            "DELETE", self._url("v1", f"agenda/rendez-vous/{appointment_id}"),
            headers=self._get_headers(),
        )

    # ─────────────────────────────────────────
    # DEVIS
    # ─────────────────────────────────────────

    def create_quote(self, client_id: int, quote: dict) -> Any:
        logger.info(
            f"[extrabat] Création devis client {client_id} — "
            f"{len(quote.get('lignes', []))} ligne(s)"
        )
        return self._request(
            "POST", self._url("v1", f"client/{client_id}/devis"),
            json=quote,
            headers=self._get_headers(json_body=True),
        )
