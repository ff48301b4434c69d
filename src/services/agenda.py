# services/agenda.py

"""
Agenda des techniciens : rendez-vous Extrabat d'une semaine.

Un appel par technicien sélectionné (v1 utilisateur/{id}/rendez-vous),
puis fusion de tous les rendez-vous triés par début.
Le premier échec vide la liste et positionne error.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

import requests

from connectors.base import MissingCredentialsError, UpstreamAPIError
from connectors.crm.extrabat import ExtrabatConnector
from services.extrabat_payloads import local_timezone

logger = logging.getLogger(__name__)

CALENDAR_ERROR = "Erreur lors de la récupération des rendez-vous"


def week_range(today: date, offset: int = 0) -> tuple[date, date]:
    """Lundi et dimanche de la semaine décalée de offset semaines."""
    monday = today - timedelta(days=today.weekday()) + timedelta(weeks=offset)
    return monday, monday + timedelta(days=6)


def _local_today() -> date:
    return datetime.now(tz=local_timezone()).date()


def _as_list(data) -> list:
    # Extrabat renvoie selon les cas une liste ou un objet indexé par id
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return list(data.values())
    return []


def _start_key(appointment: dict) -> datetime:
    try:
        return datetime.fromisoformat(str(appointment.get("debut")))
    except ValueError:
        return datetime.max


class TechnicianCalendar:

    def __init__(
        self,
        connector_factory: Callable[[], ExtrabatConnector] = ExtrabatConnector.from_env,
        today: Callable[[], date] = _local_today,
    ):
        self.connector_factory = connector_factory
        self._today = today

        self.selected_user_ids: list[str] = []
        self.week_offset = 0

        self.appointments: list[dict] = []
        self.loading = False
        self.error: Optional[str] = None
        self.week_start, self.week_end = week_range(self._today())

    # ─────────────────────────────────────────
    # NAVIGATION
    # ─────────────────────────────────────────

    def toggle_user(self, user_id: str) -> list[dict]:
        if user_id in self.selected_user_ids:
            self.selected_user_ids.remove(user_id)
        else:
            self.selected_user_ids.append(user_id)
        return self.fetch()

    def previous_week(self) -> list[dict]:
        self.week_offset -= 1
        return self.fetch()

    def next_week(self) -> list[dict]:
        self.week_offset += 1
        return self.fetch()

    def current_week(self) -> list[dict]:
        self.week_offset = 0
        return self.fetch()

    def refresh(self) -> list[dict]:
        return self.fetch()

    # ─────────────────────────────────────────
    # CHARGEMENT
    # ─────────────────────────────────────────

    def fetch(self) -> list[dict]:
        self.week_start, self.week_end = week_range(self._today(), self.week_offset)
        self.error = None

        if not self.selected_user_ids:
            self.appointments = []
            return self.appointments

        self.loading = True
        try:
            connector = self.connector_factory()
            appointments = []
            for user_id in self.selected_user_ids:
                data = connector.query(
                    f"utilisateur/{user_id}/rendez-vous",
                    params={
                        "date_debut": self.week_start.isoformat(),
                        "date_fin": self.week_end.isoformat(),
                        "include": "client",
                    },
                    api_version="v1",
                )
                appointments.extend(_as_list(data))

            self.appointments = sorted(appointments, key=_start_key)
            logger.info(
                f"[extrabat] {len(self.appointments)} rendez-vous du "
                f"{self.week_start} au {self.week_end} "
                f"({len(self.selected_user_ids)} techniciens)"
            )

        except (MissingCredentialsError, UpstreamAPIError, requests.RequestException) as e:
            logger.error(f"[extrabat] Agenda indisponible : {e}")
            self.appointments = []
            self.error = CALENDAR_ERROR

        finally:
            self.loading = False

        return self.appointments
