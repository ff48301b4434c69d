# services/extrabat_proxy.py

"""
Routeur du proxy Extrabat.

Le corps JSON est discriminé par la présence de :
→ action          : deleteAppointment | getClientData | createQuote | getClientEmail
→ endpoint        : lecture générique (recherche client, etc.)
→ interventionData: création / mise à jour d'un rendez-vous

Chaque handler retourne (status_code, payload).
Réponses : {success: True, ...} ou {success: False, error: str, ...}.
"""

import logging
from typing import Callable

import requests

from connectors.base import MissingCredentialsError, UpstreamAPIError
from connectors.crm.extrabat import ExtrabatConnector
from services.extrabat_payloads import (
    PayloadError,
    build_appointment,
    build_quote,
    build_quote_lines,
    quote_totals,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Erreur de communication avec Extrabat"

MISSING_CREDENTIALS_ERROR = (
    "Extrabat API credentials not configured. "
    "Please set EXTRABAT_API_KEY and EXTRABAT_SECURITY."
)

# type d'intervention → (table intervention, table parente, colonne parente)
_INTERVENTION_TABLES = {
    "sav": ("sav_interventions", "sav_requests", "sav_request_id"),
    "maintenance": ("maintenance_interventions", "maintenance_contracts", "contract_id"),
}


def _fail(status: int, error: str, /, **extra) -> tuple[int, dict]:
    return status, {"success": False, "error": error, **extra}


def _ok(**payload) -> tuple[int, dict]:
    return 200, {"success": True, **payload}


# ─────────────────────────────────────────
# POINT D'ENTRÉE
# ─────────────────────────────────────────

def handle_proxy_request(
    body: dict,
    connector_factory: Callable[[], ExtrabatConnector] = ExtrabatConnector.from_env,
    db_client_factory: Callable = None,
) -> tuple[int, dict]:
    """
    Credentials vérifiés avant toute autre chose, y compris avant
    la validation des paramètres.
    """
    try:
        connector = connector_factory()
    except MissingCredentialsError as e:
        logger.error(f"Credentials Extrabat absents : {e}")
        return _fail(
            500,
            MISSING_CREDENTIALS_ERROR,
            missingCredentials={
                "EXTRABAT_API_KEY": e.missing.get("api_key", False),
                "EXTRABAT_SECURITY": e.missing.get("security", False),
            },
        )

    action = body.get("action")

    try:
        if action == "deleteAppointment":
            return _delete_appointment(connector, body)
        if action == "getClientData":
            return _get_client_data(connector, body)
        if action == "createQuote":
            if db_client_factory is None:
                from services.database import get_client
                db_client_factory = get_client
            return _create_quote(connector, db_client_factory(), body)
        if action == "getClientEmail":
            return _get_client_email(connector, body)
        if body.get("endpoint"):
            return _passthrough(connector, body)
        return _save_appointment(connector, body)

    except requests.RequestException as e:
        logger.error(f"[extrabat] API injoignable : {e}")
        return _fail(500, GENERIC_ERROR)
    except Exception as e:
        logger.exception(f"[extrabat] Erreur proxy : {e}")
        return _fail(500, GENERIC_ERROR)


# ─────────────────────────────────────────
# HANDLERS
# ─────────────────────────────────────────

def _delete_appointment(connector: ExtrabatConnector, body: dict):
    appointment_id = body.get("appointmentId")
    if not appointment_id:
        return _fail(400, "Missing appointmentId parameter")

    try:
        connector.delete_appointment(appointment_id)
    except UpstreamAPIError as e:
        return _fail(e.status, f"Failed to delete appointment: {e.status}")

    return _ok(message="Appointment deleted successfully")


def _get_client_data(connector: ExtrabatConnector, body: dict):
    client_id = body.get("clientId")
    if not client_id:
        return _fail(400, "Missing clientId parameter")

    try:
        data = connector.get_client_data(client_id)
    except UpstreamAPIError as e:
        return _fail(e.status, f"Failed to fetch client data: {e.status}")

    return _ok(data=data)


def _get_client_email(connector: ExtrabatConnector, body: dict):
    client_name = body.get("clientName")
    if not client_name:
        return _fail(400, "Missing clientName parameter")

    try:
        clients = connector.search_clients_by_name(client_name)
    except UpstreamAPIError as e:
        return _fail(e.status, f"Failed to fetch client data: {e.status}")

    all_clients = [
        {
            "id": client.get("id"),
            "name": client.get("nomraisonsociale"),
            "email": connector.extract_email(client),
            "allFields": {
                key: value for key, value in client.items()
                if "mail" in key.lower()
            },
        }
        for client in clients
    ]

    email = all_clients[0]["email"] if all_clients else None

    if len(all_clients) > 1:
        logger.warning(
            f"[extrabat] {len(all_clients)} clients pour \"{client_name}\" — "
            f"email du premier retenu. Tous : {all_clients}"
        )

    return _ok(
        email=email,
        debugInfo={
            "totalClientsFound": len(clients),
            "allClients": all_clients,
        },
    )


def _passthrough(connector: ExtrabatConnector, body: dict):
    try:
        data = connector.query(
            body["endpoint"],
            params=body.get("params"),
            api_version=body.get("apiVersion") or "v2",
        )
    except UpstreamAPIError as e:
        return _fail(
            e.status,
            f"Extrabat API error: {e.status} - {e.text}",
            status=e.status,
        )

    return _ok(data=data)


def _save_appointment(connector: ExtrabatConnector, body: dict):
    codes = body.get("technicianCodes") or (
        [body["technicianCode"]] if body.get("technicianCode") else []
    )
    intervention = body.get("interventionData")

    if not codes or not intervention:
        return _fail(
            400,
            "Missing required fields: technicianCodes (or technicianCode) and interventionData",
        )
    if not intervention.get("startedAt"):
        return _fail(400, "Missing interventionData.startedAt")

    try:
        appointment = build_appointment(intervention, codes, body.get("clientId"))
    except PayloadError as e:
        return _fail(400, str(e))

    appointment_id = body.get("extrabatAppointmentId")

    try:
        data = connector.save_appointment(appointment, appointment_id)
    except UpstreamAPIError as e:
        return _fail(
            e.status,
            f"Extrabat API error: {e.status} - {e.text}",
            status=e.status,
        )

    return _ok(
        data=data,
        message=(
            "Appointment updated successfully in Extrabat" if appointment_id
            else "Appointment created successfully in Extrabat"
        ),
    )


def _create_quote(connector: ExtrabatConnector, db, body: dict):
    """
    Enchaînement séquentiel, sans rollback :
    intervention → client parent → piles/batteries → devis Extrabat.
    """
    client_id = body.get("clientId")
    intervention_id = body.get("interventionId")
    intervention_type = body.get("interventionType")

    if not client_id or not intervention_id or not intervention_type:
        return _fail(
            400,
            "Missing required parameters: clientId, interventionId, interventionType",
        )

    table, parent_table, parent_column = _INTERVENTION_TABLES.get(
        intervention_type, _INTERVENTION_TABLES["maintenance"]
    )

    try:
        result = (
            db.table(table)
            .select(parent_column)
            .eq("id", intervention_id)
            .maybe_single()
            .execute()
        )
    except Exception as e:
        logger.error(f"Erreur base intervention {intervention_id} : {e}")
        return _fail(500, f"Erreur base de données: {e}")

    intervention = result.data if result else None
    if not intervention:
        return _fail(404, "Intervention introuvable")

    try:
        parent = (
            db.table(parent_table)
            .select("client_name, address")
            .eq("id", intervention[parent_column])
            .maybe_single()
            .execute()
        )
        parent_data = parent.data if parent else None
    except Exception as e:
        logger.error(f"Erreur lecture {parent_table} : {e}")
        parent_data = None

    if not parent_data:
        return _fail(404, "Données client introuvables")

    try:
        batteries = (
            db.table("intervention_batteries")
            .select(
                "quantity, unit_price, "
                "battery_product:battery_products(name, description, ref_extrabat, vat_rate)"
            )
            .eq("intervention_id", intervention_id)
            .eq("intervention_type", intervention_type)
            .execute()
        ).data or []
    except Exception as e:
        logger.error(f"Erreur lecture batteries {intervention_id} : {e}")
        return _fail(500, "Erreur lors de la récupération des batteries")

    if not batteries:
        return _fail(400, "Aucune pile/batterie sélectionnée pour cette intervention")

    lines = build_quote_lines(batteries)
    totals = quote_totals(lines)
    quote = build_quote(client_id, parent_data.get("address"), lines)

    logger.info(
        f"[extrabat] Devis intervention {intervention_id} — "
        f"HT {totals['totalHT']} / TVA {totals['totalTVA']} / TTC {totals['totalTTC']}"
    )

    try:
        data = connector.create_quote(client_id, quote)
    except UpstreamAPIError as e:
        return _fail(e.status, f"Erreur API Extrabat: {e.status}", details=e.data)

    devis_id = None
    if isinstance(data, dict):
        devis_id = data.get("id") or data.get("devisId")

    return _ok(data=data, devisId=devis_id, totals=totals)
