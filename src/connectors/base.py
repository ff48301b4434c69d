# connectors/base.py

from abc import ABC, abstractmethod
from typing import Any
import json
import logging
import requests

logger = logging.getLogger(__name__)


class MissingCredentialsError(Exception):
    """
    Secrets absents de l'environnement.
    Erreur de configuration fatale : levée avant tout appel réseau.
    """

    def __init__(self, source: str, missing: dict[str, bool]):
        self.source = source
        self.missing = missing
        names = ", ".join(name for name, absent in missing.items() if absent)
        super().__init__(f"[{source}] credentials manquants : {names}")


class UpstreamAPIError(Exception):
    """Réponse non-2xx d'une API externe."""

    def __init__(self, source: str, status: int, text: str, data: Any = None):
        self.source = source
        self.status = status
        self.text = text
        self.data = data
        super().__init__(f"[{source}] HTTP {status} : {text[:200]}")


class BaseConnector(ABC):
    """
    Contrat commun des connecteurs vers les API externes.

    → Les credentials sont vérifiés à la construction
    → Les réponses non-2xx lèvent UpstreamAPIError (statut conservé)
    → Les erreurs réseau remontent en requests.RequestException
    """

    REQUIRED_CREDENTIALS: tuple = ()
    TIMEOUT = 30

    def __init__(self, credentials: dict):
        missing = {
            name: not credentials.get(name)
            for name in self.REQUIRED_CREDENTIALS
        }
        if any(missing.values()):
            raise MissingCredentialsError(self._get_source_name(), missing)

        self.credentials = credentials
        self.source_name = self._get_source_name()

    @abstractmethod
    def _get_source_name(self) -> str:
        pass

    # ─────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────

    def _request(self, method: str, url: str, **kwargs) -> Any:
        kwargs.setdefault("timeout", self.TIMEOUT)
        response = requests.request(method, url, **kwargs)

        text = response.text
        data = self._parse_body(text)

        if not response.ok:
            logger.error(
                f"[{self.source_name}] Erreur API {response.status_code} : {data}"
            )
            raise UpstreamAPIError(self.source_name, response.status_code, text, data)

        return data

    @staticmethod
    def _parse_body(text: str) -> Any:
        """JSON si possible, sinon le texte brut. Corps vide → None."""
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text
