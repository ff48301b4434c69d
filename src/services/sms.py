# services/sms.py

import re
import logging
from typing import Callable, Optional

from connectors.sms.twilio import TwilioConnector

logger = logging.getLogger(__name__)

DETAILS_URL = "https://bruneau27.com/gestion-sav"
PROBLEM_PREVIEW_LENGTH = 100

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


class SMSError(Exception):
    pass


# ─────────────────────────────────────────
# NUMÉROS
# ─────────────────────────────────────────

def is_e164(phone: str) -> bool:
    return bool(_E164.match(phone or ""))


def format_phone_to_e164(phone: str) -> str:
    """
    Numéros français saisis à la main → E.164.
    "06 12 34 56 78" → "+33612345678"
    """
    cleaned = re.sub(r"[\s.\-]", "", phone)

    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0033"):
        return "+" + cleaned[2:]
    if cleaned.startswith("33"):
        return "+" + cleaned
    if cleaned.startswith("0"):
        return "+33" + cleaned[1:]
    return "+33" + cleaned


# ─────────────────────────────────────────
# MESSAGES
# ─────────────────────────────────────────

def _preview(text: str) -> str:
    if len(text) > PROBLEM_PREVIEW_LENGTH:
        return text[:PROBLEM_PREVIEW_LENGTH] + "..."
    return text


def build_sms_body(
    message: Optional[str],
    sav_data: Optional[dict] = None,
    sms_type: Optional[str] = None
) -> str:
    """
    Sans sav_data : le message tel quel.
    Avec sav_data : gabarit selon le type (assignment, completion, sinon création).
    """
    if not sav_data:
        return message or ""

    urgent = " URGENT" if sav_data.get("urgent") else ""
    client = sav_data.get("client_name", "")
    system = sav_data.get("system_type", "")
    problem = _preview(sav_data.get("problem_desc") or "")

    if sms_type == "assignment":
        return (
            f"Nouvelle demande de SAV{urgent} :\n"
            f"Client: {client}\n"
            f"Système: {system}\n"
            f"Problème: {problem}\n\n"
            f"Détails : {DETAILS_URL}"
        )

    if sms_type == "completion":
        return (
            f"SAV terminé :\n"
            f"Client: {client}\n"
            f"Système: {system}\n\n"
            f"Le SAV a été marqué comme terminé. \n\n"
            f"Détails : {DETAILS_URL}"
        )

    return (
        f"Nouvelle demande SAV{urgent} :\n"
        f"Client: {client}\n"
        f"Système: {system}\n"
        f"Problème: {problem}\n\n"
        f"Détails : {DETAILS_URL}"
    )


# ─────────────────────────────────────────
# ENVOI
# ─────────────────────────────────────────

def send_sms(
    to: str,
    message: Optional[str] = None,
    sav_data: Optional[dict] = None,
    sms_type: Optional[str] = None,
    connector_factory: Callable[[], TwilioConnector] = TwilioConnector.from_env,
) -> dict:
    """
    Lève SMSError si la requête est invalide.
    Les erreurs Twilio / réseau remontent telles quelles.
    """
    if not to:
        raise SMSError("Missing required field: to")

    if not is_e164(to):
        raise SMSError(
            f"Invalid phone number format: {to}. "
            f"Must be in E.164 format (e.g., +33123456789)"
        )

    if not message and not sav_data:
        raise SMSError("Either message or savData must be provided")

    connector = connector_factory()
    message_sid = connector.send_message(to, build_sms_body(message, sav_data, sms_type))

    return {
        "success": True,
        "messageSid": message_sid,
        "message": "SMS sent successfully",
    }


def notify(to: str, sav_data: dict, sms_type: str, **kwargs) -> dict:
    """
    Notification best-effort côté application :
    le numéro est normalisé, un échec est loggé et retourné, jamais levé.
    """
    try:
        return send_sms(format_phone_to_e164(to), sav_data=sav_data, sms_type=sms_type, **kwargs)
    except Exception as e:
        logger.warning(f"SMS {sms_type} vers {to} non envoyé : {e}")
        return {"success": False, "error": str(e)}
