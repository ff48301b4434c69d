# tests/test_api.py

"""
Ce qu'on teste :
→ Auth Bearer des fonctions
→ Les routes renvoient le statut et le corps des services
→ CORS ouvert
→ Tableau de bord : facturation jamais exposée

Ce qu'on ne teste PAS :
→ Supabase / Extrabat / Twilio réels (tout est simulé)
"""

import asyncio
import threading

import httpx
import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from api.dependencies import get_db
from api.main import app

from conftest import FakeAPIError, make_supabase


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("FUNCTIONS_API_TOKEN", "jeton-test")
    return TestClient(app)


AUTH = {"Authorization": "Bearer jeton-test"}


class TestAuth:

    def test_health_is_public(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_missing_token(self, client):
        response = client.post("/send-sms", json={"to": "+33612345678", "message": "x"})
        assert response.status_code == 401

    def test_wrong_token(self, client):
        response = client.post(
            "/reformulate-report",
            json={"rapport_brut": "x"},
            headers={"Authorization": "Bearer autre"},
        )
        assert response.status_code == 401

    def test_no_token_configured(self, monkeypatch):
        monkeypatch.delenv("FUNCTIONS_API_TOKEN", raising=False)
        response = TestClient(app).post("/reformulate-report", json={"rapport_brut": ""})
        assert response.status_code == 400

    def test_cors_preflight(self, client):
        response = client.options(
            "/extrabat-proxy",
            headers={
                "Origin": "https://bruneau27.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Authorization, Content-Type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


class TestFunctions:

    def test_extrabat_proxy_status_passthrough(self, client):
        with patch("api.routes.extrabat.handle_proxy_request", return_value=(404, {"success": False, "error": "x"})) as mock_proxy:
            response = client.post("/extrabat-proxy", json={"action": "getClientData", "clientId": 1}, headers=AUTH)

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "x"}
        mock_proxy.assert_called_once_with({"action": "getClientData", "clientId": 1})

    def test_extrabat_proxy_calls_run_concurrently(self, monkeypatch):
        monkeypatch.setenv("FUNCTIONS_API_TOKEN", "jeton-test")
        # Chaque appel attend les deux autres : sérialisés, ils cassent la barrière
        barrier = threading.Barrier(3, timeout=5)

        def slow_proxy(body):
            barrier.wait()
            return 200, {"success": True, "data": body["clientId"]}

        async def scenario():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                return await asyncio.gather(*[
                    http.post(
                        "/extrabat-proxy",
                        json={"action": "getClientData", "clientId": client_id},
                        headers=AUTH,
                    )
                    for client_id in (1, 2, 3)
                ])

        with patch("api.routes.extrabat.handle_proxy_request", side_effect=slow_proxy):
            responses = asyncio.run(scenario())

        assert [r.status_code for r in responses] == [200, 200, 200]
        assert sorted(r.json()["data"] for r in responses) == [1, 2, 3]

    def test_extrabat_proxy_invalid_body(self, client):
        response = client.post("/extrabat-proxy", content="pas du json", headers=AUTH)
        assert response.status_code == 400

    def test_send_sms_invalid_number(self, client):
        response = client.post("/send-sms", json={"to": "0612345678", "message": "x"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "E.164" in response.json()["error"]

    def test_send_sms_missing_twilio(self, client, monkeypatch):
        monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
        response = client.post("/send-sms", json={"to": "+33612345678", "message": "x"}, headers=AUTH)

        assert response.status_code == 500
        assert response.json()["error"] == "Missing Twilio configuration"

    def test_send_email_missing_fields(self, client):
        response = client.post("/send-email", json={"to": "client@exemple.fr"}, headers=AUTH)
        assert response.status_code == 400

    def test_send_email_ok(self, client):
        with patch("api.routes.messaging.send_report_email", return_value="em_1"):
            response = client.post(
                "/send-email",
                json={"to": "client@exemple.fr", "subject": "Rapport", "body": "Bonjour"},
                headers=AUTH,
            )

        assert response.json() == {"success": True, "data": {"id": "em_1"}}

    def test_reformulate(self, client):
        with patch("api.routes.reformulate.reformulate", return_value="Rapport propre.") as mock_llm:
            response = client.post(
                "/reformulate-report",
                json={"rapport_brut": "rapport sale", "type": "rapport"},
                headers=AUTH,
            )

        assert response.json() == {"rapport_reformule": "Rapport propre."}
        mock_llm.assert_called_once_with("rapport sale", "rapport")

    def test_reformulate_empty(self, client):
        response = client.post("/reformulate-report", json={"rapport_brut": "  "}, headers=AUTH)
        assert response.status_code == 400
        assert response.json() == {"error": "Le texte est vide"}


class TestDashboard:

    def teardown_method(self):
        app.dependency_overrides.clear()

    def _use(self, db):
        app.dependency_overrides[get_db] = lambda: db

    def test_sav_list(self, client, mock_supabase):
        self._use(mock_supabase)
        response = client.get("/dashboard/sav", headers=AUTH)

        assert response.status_code == 200
        assert [r["id"] for r in response.json()["requests"]] == ["sav_003", "sav_002", "sav_001"]

    def test_sav_tables_missing(self, client):
        self._use(make_supabase(errors={"sav_requests": FakeAPIError("PGRST205", "missing")}))
        body = client.get("/dashboard/sav", headers=AUTH).json()

        assert body["tables_exist"] is False
        assert body["requests"] == []

    def test_sav_generic_error(self, client):
        self._use(make_supabase(errors={"sav_requests": FakeAPIError("XX000", "timeout")}))
        assert client.get("/dashboard/sav", headers=AUTH).status_code == 500

    def test_maintenance_hides_billing(self, client, mock_supabase):
        self._use(mock_supabase)
        contracts = client.get("/dashboard/maintenance", headers=AUTH).json()["contracts"]

        assert contracts[0]["id"] == "mc_002"
        assert "annual_amount" not in contracts[0]
        assert "invoice_sent" not in contracts[0]

    def test_call_notes(self, client, mock_supabase):
        self._use(mock_supabase)
        body = client.get("/dashboard/call-notes", headers=AUTH).json()

        assert len(body["call_notes"]) == 2
        assert body["pending"] == 1

    def test_brands(self, client, mock_supabase):
        self._use(mock_supabase)
        body = client.get("/dashboard/brands", headers=AUTH).json()
        assert body["all_brands"][-1] == "Autre"

    def test_add_duplicate_brand(self, client):
        self._use(make_supabase(errors={"system_brands": FakeAPIError("23505", "duplicate key")}))
        response = client.post("/dashboard/brands", json={"brand_name": "Daitem"}, headers=AUTH)

        assert response.status_code == 409
        assert response.json()["detail"] == "Cette marque existe déjà"

    def test_cities(self, client):
        self._use(make_supabase({"sav_requests": [
            {"city_derived": "Louviers"}, {"city_derived": "Bernay"}, {"city_derived": "Louviers"},
        ]}))
        assert client.get("/dashboard/cities", headers=AUTH).json() == {"cities": ["Bernay", "Louviers"]}

    def test_users(self, client):
        self._use(make_supabase({"users": [
            {"id": "u1", "email": "paul@bruneau27.com", "display_name": "Paul"},
        ]}))
        users = client.get("/dashboard/users", headers=AUTH).json()["users"]

        assert users[0]["display_name"] == "Paul"

    def test_users_error(self, client):
        self._use(make_supabase(errors={"users": FakeAPIError("XX000", "timeout")}))
        response = client.get("/dashboard/users", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["detail"] == "timeout"

    def test_statistics(self, client, mock_supabase):
        self._use(mock_supabase)
        body = client.get("/dashboard/statistics", headers=AUTH).json()

        assert body["active_sav_count"] == 3
        assert body["priority_distribution"] == {"high": 1, "normal": 2}
        assert len(body["monthly_resolution_trend"]) == 6

    def test_statistics_error(self, client):
        self._use(make_supabase(errors={"sav_requests": FakeAPIError("XX000", "timeout")}))
        assert client.get("/dashboard/statistics", headers=AUTH).status_code == 500

    def test_agenda_without_technician(self, client):
        body = client.get("/dashboard/agenda", headers=AUTH).json()
        assert body["appointments"] == []

    def test_agenda_extrabat_unavailable(self, client, monkeypatch):
        monkeypatch.delenv("EXTRABAT_API_KEY", raising=False)
        response = client.get("/dashboard/agenda", params={"user_ids": ["41"]}, headers=AUTH)

        assert response.status_code == 502
        assert response.json()["detail"] == "Erreur lors de la récupération des rendez-vous"

    def test_geocode_from_cache(self, client):
        self._use(make_supabase({"geocode_cache": [
            {"address": "4 rue Chartraine, 27000 Évreux", "latitude": 49.02, "longitude": 1.15, "display_name": "Évreux"},
        ]}))
        response = client.post(
            "/dashboard/geocode",
            json={"addresses": ["4 rue Chartraine, 27000 Évreux"]},
            headers=AUTH,
        )

        location = response.json()["locations"]["4 rue Chartraine, 27000 Évreux"]
        assert location == {"lat": 49.02, "lng": 1.15, "display_name": "Évreux"}
