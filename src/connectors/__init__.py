# connectors/__init__.py

"""
Factory centralisée pour les connecteurs externes.

Utilisation :
    from connectors import get_connector

    extrabat = get_connector("extrabat")
    client = extrabat.get_client_data(1234)

Les credentials viennent de l'environnement (from_env),
ou sont passés explicitement (tests, scripts).
"""

import importlib
import logging
from typing import Optional

from connectors.base import BaseConnector

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────
# MAP : nom outil → classe connecteur
# Ajouter un connecteur = ajouter une ligne ici
# ─────────────────────────────────────────

_CONNECTOR_MAP = {
    # CRM / planning
    "extrabat": ("connectors.crm.extrabat", "ExtrabatConnector"),

    # SMS
    "twilio": ("connectors.sms.twilio", "TwilioConnector"),
}


def get_connector(
    tool_name: str,
    credentials: Optional[dict] = None
) -> Optional[BaseConnector]:
    """
    Retourne None si l'outil est inconnu.
    MissingCredentialsError remonte : c'est une erreur de configuration.
    """
    entry = _CONNECTOR_MAP.get(tool_name.lower())

    if not entry:
        logger.warning(f"Connecteur inconnu : {tool_name}")
        return None

    module_path, class_name = entry
    cls = getattr(importlib.import_module(module_path), class_name)

    if credentials is None:
        return cls.from_env()
    return cls(credentials)


def list_supported_tools() -> list[str]:
    return list(_CONNECTOR_MAP.keys())
