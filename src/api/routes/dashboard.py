# api/routes/dashboard.py

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from api.dependencies import get_db, verify_bearer
from models import BILLING_FIELDS, MaintenanceFilters, SavFilters
from services.agenda import TechnicianCalendar
from services.call_notes import CallNoteStore
from services.database import error_message
from services.geocoding import Geocoder
from services.maintenance_contracts import MaintenanceContractStore
from services.sav_requests import SavRequestStore
from services.statistics import fetch_statistics
from services.system_brands import DUPLICATE_ERROR, BrandCatalog
from services.users import list_users

router = APIRouter(dependencies=[Depends(verify_bearer)])
logger = logging.getLogger(__name__)


class AddBrandRequest(BaseModel):
    brand_name: str


class GeocodeRequest(BaseModel):
    addresses: list[str]


# ─────────────────────────────────────────
# SAV
# ─────────────────────────────────────────

@router.get("/sav")
def get_sav_requests(
    q: Optional[str] = None,
    user_id: Optional[str] = None,
    city: Optional[str] = None,
    system_type: Optional[str] = None,
    status: Optional[str] = None,
    urgent: Optional[bool] = None,
    billing_status: Optional[str] = None,
    sort: str = Query("requested_at"),
    order: str = Query("desc"),
    client=Depends(get_db),
) -> dict:
    store = SavRequestStore(client)
    requests = store.fetch(SavFilters(
        q=q,
        user_id=user_id,
        city=city,
        system_type=system_type,
        status=status,
        urgent=urgent,
        billing_status=billing_status,
        sort=sort,
        order=order,
    ))

    _raise_on_error(store)

    return {
        "requests": requests,
        "tables_exist": store.tables_exist,
        "error": store.error,
    }


# ─────────────────────────────────────────
# MAINTENANCE
# ─────────────────────────────────────────

@router.get("/maintenance")
def get_maintenance_contracts(
    q: Optional[str] = None,
    user_id: Optional[str] = None,
    city: Optional[str] = None,
    system_type: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[bool] = None,
    sort: str = Query("client_name"),
    order: str = Query("asc"),
    client=Depends(get_db),
) -> dict:
    store = MaintenanceContractStore(client)
    contracts = store.fetch(MaintenanceFilters(
        q=q,
        user_id=user_id,
        city=city,
        system_type=system_type,
        status=status,
        priority=priority,
        sort=sort,
        order=order,
    ))

    _raise_on_error(store)

    # Pas de session côté API : la facturation n'est jamais exposée ici
    return {
        "contracts": [
            {k: v for k, v in contract.items() if k not in BILLING_FIELDS}
            for contract in contracts
        ],
        "tables_exist": store.tables_exist,
        "error": store.error,
    }


# ─────────────────────────────────────────
# NOTES D'APPEL
# ─────────────────────────────────────────

@router.get("/call-notes")
def get_call_notes(client=Depends(get_db)) -> dict:
    store = CallNoteStore(client, session=None)
    notes = store.fetch()

    if store.error:
        raise HTTPException(status_code=500, detail=store.error)

    return {
        "call_notes": [asdict(note) for note in notes],
        "pending": len(store.pending),
    }


# ─────────────────────────────────────────
# MARQUES
# ─────────────────────────────────────────

@router.get("/brands")
def get_brands(client=Depends(get_db)) -> dict:
    catalog = BrandCatalog(client)
    brands = catalog.fetch()

    if catalog.error:
        raise HTTPException(status_code=500, detail=catalog.error)

    return {
        "brands": [asdict(brand) for brand in brands],
        "all_brands": catalog.get_all_brands(),
    }


@router.post("/brands")
def add_brand(request: AddBrandRequest, client=Depends(get_db)) -> dict:
    name = request.brand_name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Le nom de la marque est obligatoire")

    catalog = BrandCatalog(client)
    if not catalog.add_custom_brand(name):
        status = 409 if catalog.error == DUPLICATE_ERROR else 500
        raise HTTPException(status_code=status, detail=catalog.error)

    return {"success": True, "all_brands": catalog.get_all_brands()}


# ─────────────────────────────────────────
# VILLES / UTILISATEURS
# ─────────────────────────────────────────

@router.get("/cities")
def get_cities(client=Depends(get_db)) -> dict:
    try:
        cities = SavRequestStore(client).list_cities()
    except Exception as e:
        logger.error(f"Erreur chargement des villes : {e}")
        raise HTTPException(status_code=500, detail=error_message(e))

    return {"cities": cities}


@router.get("/users")
def get_users(client=Depends(get_db)) -> dict:
    try:
        users = list_users(client)
    except Exception as e:
        logger.error(f"Erreur chargement des utilisateurs : {e}")
        raise HTTPException(status_code=500, detail=error_message(e))

    return {"users": [asdict(user) for user in users]}


# ─────────────────────────────────────────
# STATISTIQUES
# ─────────────────────────────────────────

@router.get("/statistics")
def get_statistics(client=Depends(get_db)) -> dict:
    try:
        stats = fetch_statistics(client)
    except Exception as e:
        logger.error(f"Erreur calcul des statistiques SAV : {e}")
        raise HTTPException(status_code=500, detail=error_message(e))

    return asdict(stats)


# ─────────────────────────────────────────
# AGENDA
# ─────────────────────────────────────────

@router.get("/agenda")
def get_agenda(
    user_ids: list[str] = Query(default=[]),
    week_offset: int = 0,
) -> dict:
    agenda = TechnicianCalendar()
    agenda.selected_user_ids = list(user_ids)
    agenda.week_offset = week_offset
    appointments = agenda.fetch()

    if agenda.error:
        raise HTTPException(status_code=502, detail=agenda.error)

    return {
        "appointments": appointments,
        "week_start": agenda.week_start.isoformat(),
        "week_end": agenda.week_end.isoformat(),
    }


# ─────────────────────────────────────────
# GÉOCODAGE
# ─────────────────────────────────────────

@router.post("/geocode")
def geocode_addresses(request: GeocodeRequest, client=Depends(get_db)) -> dict:
    locations = Geocoder(client).geocode_many(request.addresses)
    return {
        "locations": {
            address: asdict(location) if location else None
            for address, location in locations.items()
        }
    }


def _raise_on_error(store) -> None:
    """Tables absentes : réponse 200 avec le message dédié, le reste en 500."""
    if store.error and store.tables_exist:
        raise HTTPException(status_code=500, detail=store.error)
