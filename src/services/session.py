# services/session.py

import os
import logging
from typing import Optional

from models import User, from_row

logger = logging.getLogger(__name__)

# Seule cette identité voit les montants et l'état de facturation
BILLING_ACCESS_EMAIL = os.environ.get(
    "BILLING_ACCESS_EMAIL", "quentin@bruneau27.com"
)


class NotAuthenticatedError(Exception):
    pass


class Session:
    """
    Session utilisateur explicite, passée aux stores qui en ont besoin.

    Cycle de vie :
    → start()    : au démarrage, récupère l'utilisateur courant + son profil
    → sign_in()  : connexion email / mot de passe (Supabase Auth)
    → refresh()  : quand les credentials changent (événement auth)
    → sign_out() : déconnexion, la session est vidée
    """

    def __init__(self, client):
        self.client = client
        self.user = None                  # utilisateur Supabase Auth
        self.profile: Optional[User] = None

    # ─────────────────────────────────────────
    # CYCLE DE VIE
    # ─────────────────────────────────────────

    def start(self) -> "Session":
        try:
            response = self.client.auth.get_user()
            auth_user = response.user if response else None
        except Exception as e:
            logger.warning(f"Aucune session active : {e}")
            auth_user = None

        self.refresh(auth_user)
        return self

    def sign_in(self, email: str, password: str) -> dict:
        try:
            response = self.client.auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            logger.warning(f"Échec de connexion pour {email} : {e}")
            return {"error": str(e)}

        self.refresh(response.user)
        return {"error": None}

    def refresh(self, auth_user) -> None:
        self.user = auth_user
        self.profile = self._load_profile(auth_user)

    def sign_out(self) -> None:
        try:
            self.client.auth.sign_out()
        finally:
            self.user = None
            self.profile = None

    # ─────────────────────────────────────────
    # ÉTAT DÉRIVÉ
    # ─────────────────────────────────────────

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def email(self) -> Optional[str]:
        return getattr(self.user, "email", None)

    @property
    def user_id(self) -> str:
        if not self.is_authenticated:
            raise NotAuthenticatedError("User not authenticated")
        return self.user.id

    @property
    def can_access_billing_info(self) -> bool:
        return self.email is not None and self.email == BILLING_ACCESS_EMAIL

    # ─────────────────────────────────────────
    # UTILITAIRE INTERNE
    # ─────────────────────────────────────────

    def _load_profile(self, auth_user) -> Optional[User]:
        email = getattr(auth_user, "email", None)
        if not email:
            return None

        try:
            result = (
                self.client.table("users")
                .select("*")
                .eq("email", email)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            logger.error(f"Erreur chargement profil {email} : {e}")
            return None

        row = result.data if result else None
        return from_row(User, row) if row else None
