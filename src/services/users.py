# services/users.py

import logging
from typing import Callable, Optional

from models import User, from_row
from services.sms import is_e164

logger = logging.getLogger(__name__)


class UserValidationError(ValueError):
    pass


def list_users(client) -> list[User]:
    result = client.table("users").select("*").order("display_name").execute()
    return [from_row(User, row) for row in (result.data or [])]


def save_user(client, data: dict, user_id: Optional[str] = None) -> None:
    """
    Création (user_id None) ou mise à jour d'un utilisateur.
    Le téléphone sert aux SMS : format international obligatoire.
    """
    phone = (data.get("phone") or "").strip()
    if phone and not is_e164(phone):
        raise UserValidationError(
            "Le numéro de téléphone doit être au format international (+33123456789)"
        )

    record = {
        "email": data.get("email"),
        "display_name": data.get("display_name"),
        "phone": phone or None,
        "extrabat_code": data.get("extrabat_code"),
        "role": data.get("role"),
    }

    if user_id:
        client.table("users").update(record).eq("id", user_id).execute()
        logger.info(f"Utilisateur mis à jour : {record['email']}")
    else:
        client.table("users").insert(record).execute()
        logger.info(f"Utilisateur créé : {record['email']}")


def delete_user(client, user_id: str, confirm: Callable[[], bool]) -> bool:
    if not confirm():
        return False
    client.table("users").delete().eq("id", user_id).execute()
    logger.info(f"Utilisateur supprimé : {user_id}")
    return True


def find_by_name_or_email(users: list[User], needle: str) -> Optional[User]:
    """Recherche approximative (ex : destinataire des SMS de fin de SAV)."""
    needle = needle.lower()
    return next(
        (
            u for u in users
            if needle in (u.email or "").lower()
            or needle in (u.display_name or "").lower()
        ),
        None,
    )
