# services/extrabat_payloads.py

"""
Construction des payloads Extrabat : rendez-vous d'agenda et devis.

Formats imposés par Extrabat :
→ dates en heure locale "YYYY-MM-DD HH:MM:SS" (pas d'ISO, pas d'UTC)
→ adresse découpée en rue / cp / ville
→ montants arrondis au centime ligne par ligne, puis les totaux
"""

import math
import os
import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_DURATION = timedelta(hours=2)
APPOINTMENT_COLOR = 23061
DEFAULT_VAT_RATE = 20
QUOTE_TITLE = "Remplacement piles/batteries alarme intrusion"

_POSTCODE_CITY = re.compile(r"^(\d{5})\s+(.+)$")


class PayloadError(ValueError):
    pass


# ─────────────────────────────────────────
# DATES
# ─────────────────────────────────────────

def local_timezone() -> ZoneInfo:
    return ZoneInfo(os.getenv("EXTRABAT_TIMEZONE", "Europe/Paris"))


def parse_datetime(value) -> datetime:
    """
    ISO avec ou sans fuseau. Sans fuseau = heure locale
    (c'est ce que renvoie un champ datetime-local).
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise PayloadError(f"Date invalide : {value}") from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=local_timezone())
    return parsed


def format_extrabat_datetime(value: datetime) -> str:
    local = value.astimezone(local_timezone()) if value.tzinfo else value
    return local.strftime("%Y-%m-%d %H:%M:%S")


def compute_end(start: datetime, end: Optional[datetime] = None) -> datetime:
    return end if end is not None else start + DEFAULT_DURATION


# ─────────────────────────────────────────
# ADRESSE
# ─────────────────────────────────────────

def parse_address(address: str) -> dict:
    """
    "12 Rue de Paris, 75001 Paris" → rue / cp / ville.
    Sans code postal à 5 chiffres dans le dernier segment,
    la ville reçoit le segment entier et cp reste absent.
    Un seul segment → tout dans rue.
    """
    parts = [part.strip() for part in address.split(",")]

    if len(parts) < 2:
        return {"rue": address}

    parsed = {"rue": parts[0]}
    last = parts[-1]
    match = _POSTCODE_CITY.match(last)

    if match:
        parsed["cp"] = match.group(1)
        parsed["ville"] = match.group(2)
    else:
        parsed["ville"] = last

    return parsed


# ─────────────────────────────────────────
# RENDEZ-VOUS
# ─────────────────────────────────────────

def build_appointment(
    intervention: dict,
    technician_codes: list,
    client_id: Optional[int] = None
) -> dict:
    """
    intervention : clientName, systemType, problemDesc, startedAt,
                   endedAt?, address?, latitude?, longitude?
    """
    start = parse_datetime(intervention["startedAt"])
    ended_at = intervention.get("endedAt")
    end = compute_end(start, parse_datetime(ended_at) if ended_at else None)

    try:
        users = [{"user": int(str(code).strip())} for code in technician_codes]
    except ValueError as e:
        raise PayloadError(f"Code technicien Extrabat invalide : {technician_codes}") from e

    appointment = {
        "journee": False,
        "objet": f"SAV {intervention.get('systemType', '')} - {intervention.get('clientName', '')}",
        "debut": format_extrabat_datetime(start),
        "fin": format_extrabat_datetime(end),
        "couleur": APPOINTMENT_COLOR,
        "users": users,
    }

    if intervention.get("address"):
        appointment.update(parse_address(intervention["address"]))

    latitude = intervention.get("latitude")
    longitude = intervention.get("longitude")
    if latitude is not None and longitude is not None:
        appointment["latitude"] = latitude
        appointment["longitude"] = longitude

    if client_id:
        appointment["rdvClients"] = [{"client": client_id}]

    return appointment


# ─────────────────────────────────────────
# DEVIS
# ─────────────────────────────────────────

def round2(value: float) -> float:
    """
    Arrondi au centime, moitié vers le haut (Math.round côté Extrabat),
    pas l'arrondi bancaire de round().
    """
    return math.floor(value * 100 + 0.5) / 100


def build_quote_lines(batteries: list) -> list:
    """
    batteries : lignes intervention_batteries avec battery_product joint.
    Chaque ligne est arrondie indépendamment.
    """
    lines = []

    for index, item in enumerate(batteries):
        product = item.get("battery_product") or {}

        puht = product.get("unit_price") or item.get("unit_price") or 0
        quantite = item.get("quantity") or 1
        taux_tva = product.get("vat_rate") or DEFAULT_VAT_RATE

        total_ht = round2(puht * quantite)
        total_tva = round2(total_ht * (taux_tva / 100))
        total_ttc = round2(total_ht + total_tva)

        lines.append({
            "code": product.get("ref_extrabat") or "",
            "description": product.get("description") or product.get("name") or "",
            "quantite": quantite,
            "puht": puht,
            "totalHt": total_ht,
            "totalNet": total_ht,
            "tauxTva": taux_tva,
            "totalTva": total_tva,
            "totalTtc": total_ttc,
            "ordre": index + 1,
            "numLigne": index + 1,
        })

    return lines


def quote_totals(lines: list) -> dict:
    """
    HT et TVA : somme des lignes déjà arrondies, arrondie à nouveau.
    TTC : HT + TVA arrondis. Les écarts au centime sont voulus.
    """
    total_ht = round2(sum(line["totalNet"] for line in lines))
    total_tva = round2(sum(line["totalTva"] for line in lines))
    return {
        "totalHT": total_ht,
        "totalTVA": total_tva,
        "totalTTC": round2(total_ht + total_tva),
    }


def build_quote(
    client_id: int,
    address: Optional[str],
    lines: list,
    today: Optional[date] = None
) -> dict:
    today = today or datetime.utcnow().date()
    return {
        "type": 1,
        "date": today.isoformat(),
        "titre": QUOTE_TITLE,
        "adresseFacturation": address or "",
        "adresseLivraison": address or "",
        "client": client_id,
        "lignes": lines,
    }
