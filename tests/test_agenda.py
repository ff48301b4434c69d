# tests/test_agenda.py

"""
Ce qu'on teste :
→ Semaine du lundi au dimanche, navigation semaine par semaine
→ Un appel Extrabat v1 par technicien, fusion triée par début
→ Réponse liste ou objet indexé
→ Un échec vide la liste et positionne l'erreur

Ce qu'on ne teste PAS :
→ Le vrai agenda Extrabat
"""

from datetime import date
from unittest.mock import MagicMock

import requests

from connectors.base import MissingCredentialsError, UpstreamAPIError
from services.agenda import CALENDAR_ERROR, TechnicianCalendar, week_range


class TestWeekRange:

    def test_monday_to_sunday(self):
        assert week_range(date(2025, 3, 12)) == (date(2025, 3, 10), date(2025, 3, 16))

    def test_offset(self):
        assert week_range(date(2025, 3, 12), -1) == (date(2025, 3, 3), date(2025, 3, 9))


class TestTechnicianCalendar:

    def setup_method(self):
        self.connector = MagicMock()
        self.calendar = TechnicianCalendar(
            connector_factory=lambda: self.connector,
            today=lambda: date(2025, 3, 12),
        )

    def test_no_technician_no_call(self):
        assert self.calendar.fetch() == []
        self.connector.query.assert_not_called()

    def test_merged_and_sorted(self):
        self.connector.query.side_effect = [
            [{"id": 2, "debut": "2025-03-13 14:00:00", "objet": "SAV Martin"}],
            {"7": {"id": 7, "debut": "2025-03-11 08:30:00", "objet": "Maintenance Leroy"}},
        ]
        self.calendar.selected_user_ids = ["41", "42"]

        appointments = self.calendar.fetch()

        assert [a["id"] for a in appointments] == [7, 2]
        self.connector.query.assert_any_call(
            "utilisateur/41/rendez-vous",
            params={"date_debut": "2025-03-10", "date_fin": "2025-03-16", "include": "client"},
            api_version="v1",
        )
        assert self.connector.query.call_count == 2

    def test_toggle_user(self):
        self.connector.query.return_value = []

        self.calendar.toggle_user("41")
        assert self.calendar.selected_user_ids == ["41"]

        self.calendar.toggle_user("41")
        assert self.calendar.selected_user_ids == []
        assert self.connector.query.call_count == 1

    def test_week_navigation(self):
        self.connector.query.return_value = []
        self.calendar.selected_user_ids = ["41"]

        self.calendar.next_week()
        assert self.calendar.week_start == date(2025, 3, 17)
        params = self.connector.query.call_args[1]["params"]
        assert params["date_debut"] == "2025-03-17"

        self.calendar.current_week()
        assert self.calendar.week_start == date(2025, 3, 10)

        self.calendar.previous_week()
        assert self.calendar.week_end == date(2025, 3, 9)

    def test_upstream_error_clears_list(self):
        self.calendar.selected_user_ids = ["41"]
        self.calendar.appointments = [{"id": 1}]
        self.connector.query.side_effect = UpstreamAPIError("extrabat", 500, "boom")

        assert self.calendar.fetch() == []
        assert self.calendar.error == CALENDAR_ERROR
        assert self.calendar.loading is False

    def test_network_error(self):
        self.calendar.selected_user_ids = ["41"]
        self.connector.query.side_effect = requests.ConnectionError("injoignable")

        self.calendar.fetch()

        assert self.calendar.error == CALENDAR_ERROR

    def test_missing_credentials(self):
        def no_credentials():
            raise MissingCredentialsError("extrabat", {"api_key": True, "security": False})

        calendar = TechnicianCalendar(connector_factory=no_credentials, today=lambda: date(2025, 3, 12))
        calendar.selected_user_ids = ["41"]

        assert calendar.fetch() == []
        assert calendar.error == CALENDAR_ERROR
