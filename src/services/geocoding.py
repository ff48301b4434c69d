# services/geocoding.py

"""
Géocodage des adresses clients pour la carte des interventions.

Ordre de résolution : mémoire → table geocode_cache → Nominatim.
Une adresse introuvable est aussi mise en cache (coordonnées nulles)
pour ne pas interroger Nominatim à chaque affichage.
"""

import re
import time
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from models import GeocodedLocation

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "gestion-sav/1.0 (info@bruneau27.com)"
CACHE_TABLE = "geocode_cache"

# Politique d'usage Nominatim : une requête par seconde au plus
RATE_LIMIT_SECONDS = 1.0
TIMEOUT = 10


def clean_address(address: str) -> str:
    return re.sub(r"\s+", " ", address).strip()


def _from_cache(row: dict, address: str) -> Optional[GeocodedLocation]:
    if row.get("latitude") is None or row.get("longitude") is None:
        return None
    return GeocodedLocation(
        lat=row["latitude"],
        lng=row["longitude"],
        display_name=row.get("display_name") or address,
    )


class Geocoder:

    def __init__(self, client, sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self._sleep = sleep
        self._memory: dict[str, Optional[GeocodedLocation]] = {}

    def geocode(self, address: Optional[str]) -> Optional[GeocodedLocation]:
        if not address or not address.strip():
            return None

        if address in self._memory:
            return self._memory[address]

        try:
            cached = (
                self.client.table(CACHE_TABLE)
                .select("latitude, longitude, display_name")
                .eq("address", address)
                .maybe_single()
                .execute()
            )
            # maybe_single() renvoie None quand aucune ligne ne correspond
            if cached is not None and cached.data:
                return self._remember(address, _from_cache(cached.data, address))
        except Exception as e:
            logger.warning(f"Cache géocodage illisible pour \"{address}\" : {e}")

        try:
            results = self._search(clean_address(address))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Géocodage impossible pour \"{address}\" : {e}")
            return self._remember(address, None)

        location = None
        if results:
            first = results[0]
            location = GeocodedLocation(
                lat=float(first["lat"]),
                lng=float(first["lon"]),
                display_name=first.get("display_name") or address,
            )

        self._store(address, location)
        return self._remember(address, location)

    def geocode_many(self, addresses: list) -> dict:
        """
        Une seule lecture du cache pour tout le lot,
        puis géocodage un par un de ce qui manque.
        """
        unique = list(dict.fromkeys(a for a in addresses if a and a.strip()))
        results: dict[str, Optional[GeocodedLocation]] = {}
        if not unique:
            return results

        try:
            cached = (
                self.client.table(CACHE_TABLE)
                .select("address, latitude, longitude, display_name")
                .in_("address", unique)
                .execute()
            )
            for row in cached.data or []:
                address = row["address"]
                results[address] = self._remember(address, _from_cache(row, address))
        except Exception as e:
            logger.warning(f"Cache géocodage illisible : {e}")

        for address in unique:
            if address not in results:
                results[address] = self.geocode(address)

        return results

    # ─────────────────────────────────────────

    def _search(self, query: str) -> list:
        self._sleep(RATE_LIMIT_SECONDS)
        response = requests.get(
            NOMINATIM_URL,
            params={"format": "json", "q": query, "limit": 1},
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            timeout=TIMEOUT,
        )
        response.raise_for_status()
        return response.json()

    def _store(self, address: str, location: Optional[GeocodedLocation]) -> None:
        try:
            self.client.table(CACHE_TABLE).upsert({
                "address": address,
                "latitude": location.lat if location else None,
                "longitude": location.lng if location else None,
                "display_name": location.display_name if location else None,
                "updated_at": datetime.now(tz=timezone.utc).isoformat(),
            }).execute()
        except Exception as e:
            logger.warning(f"Cache géocodage non mis à jour pour \"{address}\" : {e}")

    def _remember(self, address: str, location: Optional[GeocodedLocation]):
        self._memory[address] = location
        return location
