# tests/conftest.py

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock


# ─────────────────────────────────────────
# FIXTURES — DONNÉES RÉALISTES
# Des lignes qui ressemblent à ce que
# renvoie vraiment Supabase.
# ─────────────────────────────────────────

@pytest.fixture
def sample_sav_requests():
    now = datetime(2025, 3, 10, 9, 0, 0)
    return [
        # SAV classique, ancien
        {
            "id": "sav_001",
            "client_name": "Boulangerie Martin",
            "address": "4 rue Chartraine, 27000 Évreux",
            "city_derived": "Évreux",
            "system_type": "intrusion",
            "problem_desc": "Le clavier ne répond plus",
            "status": "nouvelle",
            "priority": False,
            "urgent": False,
            "requested_at": (now - timedelta(days=5)).isoformat(),
            "interventions": [],
        },
        # Urgent, récent
        {
            "id": "sav_002",
            "client_name": "Mairie de Louviers",
            "address": "Place Ernest Thorel, 27400 Louviers",
            "city_derived": "Louviers",
            "system_type": "ssi",
            "problem_desc": "Défaut batterie centrale",
            "status": "en_cours",
            "priority": False,
            "urgent": True,
            "requested_at": (now - timedelta(days=1)).isoformat(),
            "interventions": [],
        },
        # Prioritaire, le plus ancien
        {
            "id": "sav_003",
            "client_name": "Garage Dupont",
            "address": "12 route de Paris, 27100 Val-de-Reuil",
            "city_derived": "Val-de-Reuil",
            "system_type": "video",
            "problem_desc": "Caméra parking hors ligne",
            "status": "nouvelle",
            "priority": True,
            "urgent": False,
            "requested_at": (now - timedelta(days=20)).isoformat(),
            "interventions": [],
        },
    ]


@pytest.fixture
def sample_contracts():
    return [
        {
            "id": "mc_001",
            "client_name": "Pharmacie du Centre",
            "system_type": "intrusion",
            "status": "realisee",
            "priority": False,
            "battery_installation_year": 2019,
            "annual_amount": 180.0,
            "invoice_sent": True,
            "interventions": [],
        },
        {
            "id": "mc_002",
            "client_name": "Cabinet Leroy",
            "system_type": "video",
            "status": "a_realiser",
            "priority": False,
            "battery_installation_year": 2021,
            "annual_amount": 240.0,
            "invoice_sent": False,
            "interventions": [],
        },
    ]


@pytest.fixture
def sample_call_notes():
    return [
        {
            "id": "note_001",
            "created_by": "user_001",
            "client_name": "M. Bernard",
            "client_phone": "0612345678",
            "call_subject": "Rappel devis",
            "is_completed": False,
            "priority": "high",
            "created_at": "2025-03-10T08:30:00Z",
        },
        {
            "id": "note_002",
            "created_by": "user_001",
            "client_name": "Mme Petit",
            "call_subject": "Code alarme oublié",
            "is_completed": True,
            "priority": "normal",
            "created_at": "2025-03-09T16:00:00Z",
        },
    ]


@pytest.fixture
def sample_brands():
    return [
        {"id": "b1", "brand_name": "Daitem", "models": ["SH320AX", "SH399AX"]},
        {"id": "b2", "brand_name": "Hikvision", "models": []},
    ]


# ─────────────────────────────────────────
# SUPABASE
# ─────────────────────────────────────────

class FakeAPIError(Exception):
    """Même forme qu'une erreur PostgREST : code + message."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(message)


def make_query(data=None, error=None):
    """
    Chaîne de méthodes fluide : chaque filtre renvoie la même requête.
    execute() renvoie data, ou lève error.
    """
    query = MagicMock()
    for method in (
        "select", "eq", "neq", "in_", "is_", "or_", "order", "limit",
        "maybe_single", "insert", "update", "delete", "upsert",
    ):
        getattr(query, method).return_value = query
    query.not_ = query

    if error is not None:
        query.execute.side_effect = error
    else:
        query.execute.return_value = MagicMock(data=data if data is not None else [])

    return query


def make_supabase(tables: dict = None, errors: dict = None):
    """
    Client Supabase simulé.
    Une requête par table, réutilisée à chaque appel de client.table(nom) :
    les assertions peuvent donc porter sur client.table(nom).update...
    """
    tables = tables or {}
    errors = errors or {}
    queries = {}

    def table(name):
        if name not in queries:
            queries[name] = make_query(tables.get(name), errors.get(name))
        return queries[name]

    client = MagicMock()
    client.table.side_effect = table
    client.storage.from_.return_value.get_public_url.side_effect = (
        lambda path: f"https://cdn.test/intervention-photos/{path}"
    )
    return client


@pytest.fixture
def mock_supabase(sample_sav_requests, sample_contracts, sample_call_notes, sample_brands):
    """
    Mock Supabase complet.
    On ne touche jamais la vraie base pendant les tests.
    """
    return make_supabase({
        "sav_requests": sample_sav_requests,
        "maintenance_contracts": sample_contracts,
        "call_notes": sample_call_notes,
        "system_brands": sample_brands,
    })


@pytest.fixture
def billing_session():
    session = MagicMock()
    session.is_authenticated = True
    session.user_id = "user_billing"
    session.can_access_billing_info = True
    return session


@pytest.fixture
def technician_session():
    session = MagicMock()
    session.is_authenticated = True
    session.user_id = "user_tech"
    session.can_access_billing_info = False
    return session
