# services/database.py

import os
import logging
from typing import Optional
from supabase import AsyncClient, Client, acreate_client, create_client

logger = logging.getLogger(__name__)

PHOTOS_BUCKET = "intervention-photos"

# Code PostgREST quand la table n'existe pas dans le cache de schéma
TABLE_NOT_FOUND_CODE = "PGRST205"
# Code Postgres : violation de contrainte d'unicité
UNIQUE_VIOLATION_CODE = "23505"

TABLES_MISSING_MESSAGE = (
    "Database tables not found. Please set up the database schema first."
)


# ─────────────────────────────────────────
# CONNEXION
# ─────────────────────────────────────────

def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


async def get_async_client() -> AsyncClient:
    """
    Client asynchrone : le seul qui gère le realtime dans supabase-py
    (le client sync lève NotImplementedError sur channel()).
    """
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return await acreate_client(url, key)


def check_backend_config() -> bool:
    """
    Vérifie la présence de la config Supabase au démarrage.
    Absence = simple avertissement : les fonctionnalités qui lisent
    la base seront dégradées, le proxy Extrabat reste utilisable.
    """
    missing = [
        name for name in ("SUPABASE_URL", "SUPABASE_SERVICE_KEY")
        if not os.environ.get(name)
    ]

    if missing:
        logger.warning(
            f"Configuration Supabase incomplète ({', '.join(missing)}) — "
            f"fonctionnalités base de données dégradées"
        )
        return False

    return True


# ─────────────────────────────────────────
# ERREURS
# ─────────────────────────────────────────

def error_code(error: Exception) -> Optional[str]:
    code = getattr(error, "code", None)
    return str(code) if code is not None else None


def error_message(error: Exception) -> str:
    message = getattr(error, "message", None)
    return str(message) if message else str(error)


def is_table_not_found_error(error: Exception) -> bool:
    """
    La table n'existe pas encore (schéma non installé).
    Distinct d'une erreur générique : l'UI affiche "installation incomplète".
    """
    return (
        error_code(error) == TABLE_NOT_FOUND_CODE
        or "Could not find the table" in error_message(error)
    )


def is_unique_violation(error: Exception) -> bool:
    return error_code(error) == UNIQUE_VIOLATION_CODE


# ─────────────────────────────────────────
# STOCKAGE
# ─────────────────────────────────────────

def public_url(client: Client, path: str, bucket: str = PHOTOS_BUCKET) -> str:
    return client.storage.from_(bucket).get_public_url(path)


def attach_photo_urls(client: Client, photos: list) -> list:
    """Ajoute l'URL publique à chaque photo d'intervention."""
    return [
        {**photo, "url": public_url(client, photo["file_path"])}
        for photo in photos
    ]


def load_intervention_details(
    client: Client,
    interventions: list,
    technicians_table: str,
    parent_column: str,
    intervention_type: str
) -> list:
    """
    Charge techniciens et photos pour chaque intervention.
    Une requête par intervention et par table, comme côté client.
    """
    enriched = []

    for intervention in interventions:
        tech_result = (
            client.table(technicians_table)
            .select("technician:technician_id(id, display_name, email)")
            .eq(parent_column, intervention["id"])
            .execute()
        )

        photos_result = (
            client.table("intervention_photos")
            .select("*")
            .eq("intervention_id", intervention["id"])
            .eq("intervention_type", intervention_type)
            .execute()
        )

        enriched.append({
            **intervention,
            "technicians": [
                row["technician"] for row in (tech_result.data or [])
                if row.get("technician")
            ],
            "photos": attach_photo_urls(client, photos_result.data or []),
        })

    return enriched


# ─────────────────────────────────────────
# UTILITAIRE INTERNE
# ─────────────────────────────────────────

def clean_payload(data: dict) -> dict:
    """
    Les champs texte vides du formulaire sont enregistrés à NULL.
    """
    return {
        key: (None if isinstance(value, str) and value.strip() == "" else value)
        for key, value in data.items()
    }
