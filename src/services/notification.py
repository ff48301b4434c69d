# services/notification.py

import os
import re
import logging
import requests
from typing import Optional

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
DEFAULT_FROM = "Bruneau Protection <info@bruneau27.com>"
OFFICE_CC = "info@bruneau27.com"

# "email@domaine.fr" ou "Nom <email@domaine.fr>"
_SENDER_PATTERN = re.compile(
    r"^([a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
    r"|.+<[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}>)$"
)


class EmailError(Exception):

    def __init__(self, message: str, status: int = 500, details: Optional[dict] = None):
        self.status = status
        self.details = details
        super().__init__(message)


# ─────────────────────────────────────────
# EMAIL (via Resend)
# ─────────────────────────────────────────

def sender_address() -> str:
    from_email = os.environ.get("RESEND_FROM_EMAIL", "").strip()
    if not from_email or not _SENDER_PATTERN.match(from_email):
        logger.info(f"RESEND_FROM_EMAIL invalide : \"{from_email}\" — expéditeur par défaut")
        return DEFAULT_FROM
    return from_email


def build_html_body(body: str, signature_base64: Optional[str] = None) -> str:
    body_with_breaks = body.replace("\n", "<br>")
    signature = ""
    if signature_base64:
        signature = (
            f'<img src="data:image/png;base64,{signature_base64}" alt="Signature" '
            f'style="max-width: 300px; margin-top: 20px;" />'
        )
    return (
        "<html>"
        '<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        f"<div>{body_with_breaks}</div>"
        f"{signature}"
        "</body>"
        "</html>"
    )


def send_report_email(
    to: str,
    subject: str,
    body: str,
    attachment_base64: Optional[str] = None,
    attachment_name: Optional[str] = None,
    signature_base64: Optional[str] = None
) -> str:
    """
    Envoie le rapport d'intervention au client, bureau en copie.
    Retourne l'id Resend. Lève EmailError avec le statut Resend.
    """
    if not to or not subject or not body:
        raise EmailError("Missing required fields: to, subject, body", status=400)

    api_key = os.environ.get("RESEND_API_KEY", "")
    if not api_key:
        logger.error("RESEND_API_KEY non configuré")
        raise EmailError(
            "Email service not configured. Please add RESEND_API_KEY.",
            status=500,
        )

    payload = {
        "from": sender_address(),
        "to": [to],
        "cc": [OFFICE_CC],
        "subject": subject,
        "html": build_html_body(body, signature_base64),
    }

    if attachment_base64 and attachment_name:
        payload["attachments"] = [{
            "filename": attachment_name,
            "content": attachment_base64,
        }]

    response = requests.post(
        RESEND_URL,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        },
        json=payload,
        timeout=30
    )

    try:
        data = response.json()
    except ValueError:
        data = {}

    if not response.ok:
        logger.error(f"Erreur Resend {response.status_code} : {data}")
        raise EmailError(
            _resend_error_message(response.status_code, data),
            status=response.status_code,
            details=data,
        )

    logger.info(f"Email envoyé à {to} — sujet : {subject}")
    return data.get("id", "")


def _resend_error_message(status: int, data: dict) -> str:
    message = data.get("message") or ""

    if status == 403 and "testing emails" in message:
        return (
            "Resend est en mode test. Pour envoyer des emails à des clients, vous devez :\n\n"
            "1. Vérifier un domaine sur resend.com/domains\n"
            "2. Configurer RESEND_FROM_EMAIL avec une adresse de ce domaine"
        )

    if status == 422:
        if message:
            return f"Erreur de validation: {message}"
        return "Validation échouée. Vérifiez l'adresse email et la taille de la pièce jointe."

    return message or "Failed to send email"
