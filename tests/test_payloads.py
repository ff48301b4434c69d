# tests/test_payloads.py

"""
Ce qu'on teste :
→ Format des dates Extrabat (heure locale, pas d'ISO)
→ Fin par défaut = début + 2h
→ Découpage de l'adresse rue / cp / ville
→ Rendez-vous : objet, couleur, techniciens, coordonnées
→ Devis : arrondi ligne par ligne puis totaux

Ce qu'on ne teste PAS :
→ L'API Extrabat elle-même
"""

import pytest
from datetime import date

from services.extrabat_payloads import (
    APPOINTMENT_COLOR,
    QUOTE_TITLE,
    PayloadError,
    build_appointment,
    build_quote,
    build_quote_lines,
    compute_end,
    format_extrabat_datetime,
    parse_address,
    parse_datetime,
    quote_totals,
    round2,
)


@pytest.fixture(autouse=True)
def paris_timezone(monkeypatch):
    monkeypatch.setenv("EXTRABAT_TIMEZONE", "Europe/Paris")


class TestDates:

    def test_naive_is_local(self):
        start = parse_datetime("2025-03-10T09:30")
        assert format_extrabat_datetime(start) == "2025-03-10 09:30:00"

    def test_utc_converted_to_local(self):
        # Mars : UTC+1 à Paris
        start = parse_datetime("2025-03-10T08:30:00Z")
        assert format_extrabat_datetime(start) == "2025-03-10 09:30:00"

    def test_summer_time(self):
        start = parse_datetime("2025-07-01T08:00:00+00:00")
        assert format_extrabat_datetime(start) == "2025-07-01 10:00:00"

    def test_default_end_two_hours(self):
        start = parse_datetime("2025-03-10T09:00")
        assert format_extrabat_datetime(compute_end(start)) == "2025-03-10 11:00:00"

    def test_explicit_end_kept(self):
        start = parse_datetime("2025-03-10T09:00")
        end = parse_datetime("2025-03-10T09:45")
        assert compute_end(start, end) is end

    def test_invalid_date(self):
        with pytest.raises(PayloadError):
            parse_datetime("demain matin")


class TestAddress:

    def test_full_address(self):
        assert parse_address("12 Rue de Paris, 75001 Paris") == {
            "rue": "12 Rue de Paris", "cp": "75001", "ville": "Paris",
        }

    def test_last_part_without_postcode(self):
        assert parse_address("Lieu-dit Les Fosses, Évreux") == {
            "rue": "Lieu-dit Les Fosses", "ville": "Évreux",
        }

    def test_single_part(self):
        assert parse_address("Zone artisanale") == {"rue": "Zone artisanale"}

    def test_middle_parts_ignored(self):
        parsed = parse_address("Bâtiment B, 3 allée des Lilas, 27000 Évreux")
        assert parsed == {"rue": "Bâtiment B", "cp": "27000", "ville": "Évreux"}


class TestAppointment:

    def setup_method(self):
        self.intervention = {
            "clientName": "Boulangerie Martin",
            "systemType": "intrusion",
            "startedAt": "2025-03-10T14:00",
            "address": "4 rue Chartraine, 27000 Évreux",
        }

    def test_basic_fields(self):
        appointment = build_appointment(self.intervention, ["42"])

        assert appointment["journee"] is False
        assert appointment["objet"] == "SAV intrusion - Boulangerie Martin"
        assert appointment["debut"] == "2025-03-10 14:00:00"
        assert appointment["fin"] == "2025-03-10 16:00:00"
        assert appointment["couleur"] == APPOINTMENT_COLOR
        assert appointment["users"] == [{"user": 42}]
        assert appointment["cp"] == "27000"
        assert appointment["ville"] == "Évreux"
        assert "rdvClients" not in appointment
        assert "latitude" not in appointment

    def test_several_technicians(self):
        appointment = build_appointment(self.intervention, ["42", 7])
        assert appointment["users"] == [{"user": 42}, {"user": 7}]

    def test_client_and_coordinates(self):
        data = {**self.intervention, "latitude": 49.02, "longitude": 1.15}
        appointment = build_appointment(data, ["42"], client_id=1234)

        assert appointment["rdvClients"] == [{"client": 1234}]
        assert appointment["latitude"] == 49.02
        assert appointment["longitude"] == 1.15

    def test_one_coordinate_is_not_enough(self):
        appointment = build_appointment({**self.intervention, "latitude": 49.02}, ["42"])
        assert "latitude" not in appointment

    def test_invalid_technician_code(self):
        with pytest.raises(PayloadError):
            build_appointment(self.intervention, ["DUPONT"])


class TestQuote:

    def test_round2_half_up(self):
        assert round2(0.125) == 0.13
        assert round2(10) == 10

    def test_single_line(self):
        lines = build_quote_lines([{
            "quantity": 3,
            "unit_price": 10,
            "battery_product": {"ref_extrabat": "PILE-LS14250", "description": "Pile lithium 3,6V", "vat_rate": 20},
        }])

        assert lines[0]["totalHt"] == 30
        assert lines[0]["totalTva"] == 6
        assert lines[0]["totalTtc"] == 36
        assert lines[0]["code"] == "PILE-LS14250"
        assert lines[0]["ordre"] == 1
        assert lines[0]["numLigne"] == 1

        assert quote_totals(lines) == {"totalHT": 30, "totalTVA": 6, "totalTTC": 36}

    def test_two_lines(self):
        lines = build_quote_lines([
            {"quantity": 3, "unit_price": 10, "battery_product": {"vat_rate": 20}},
            {"quantity": 1, "unit_price": 30, "battery_product": {"vat_rate": 20}},
        ])

        assert [line["numLigne"] for line in lines] == [1, 2]
        assert quote_totals(lines) == {"totalHT": 60, "totalTVA": 12, "totalTTC": 72}

    def test_defaults(self):
        lines = build_quote_lines([{"unit_price": 12.5, "battery_product": None}])

        assert lines[0]["quantite"] == 1
        assert lines[0]["tauxTva"] == 20
        assert lines[0]["totalTtc"] == 15

    def test_product_price_wins(self):
        lines = build_quote_lines([{
            "quantity": 2,
            "unit_price": 5,
            "battery_product": {"unit_price": 8, "vat_rate": 5.5},
        }])

        assert lines[0]["puht"] == 8
        assert lines[0]["totalHt"] == 16
        assert lines[0]["totalTva"] == 0.88

    def test_per_line_rounding(self):
        # 3 × 0.333 = 0.999 → 1.00 ; TVA 0.20 par ligne
        lines = build_quote_lines([
            {"quantity": 3, "unit_price": 0.333},
            {"quantity": 3, "unit_price": 0.333},
        ])
        totals = quote_totals(lines)
        assert totals == {"totalHT": 2.0, "totalTVA": 0.4, "totalTTC": 2.4}

    def test_build_quote(self):
        quote = build_quote(1234, "4 rue Chartraine, 27000 Évreux", [], today=date(2025, 3, 10))

        assert quote["type"] == 1
        assert quote["date"] == "2025-03-10"
        assert quote["titre"] == QUOTE_TITLE
        assert quote["client"] == 1234
        assert quote["adresseFacturation"] == quote["adresseLivraison"]
