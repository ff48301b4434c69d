# forms.py

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from models import (
    BILLING_FIELDS,
    BillingMode,
    CallNotePriority,
    ClientType,
    ContractStatus,
    SystemType,
    UserRole,
)

MIN_BATTERY_YEAR = 1990
BILLING_SECTION = "facturation"
INVALID_VALUE = "Valeur invalide"

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _require(value, message: str):
    if value is None:
        raise ValueError(message)
    return value


# ─────────────────────────────────────────
# FORMULAIRES
# Validés avant tout appel Supabase : le premier
# champ en erreur bloque la soumission
# ─────────────────────────────────────────

class _Form(BaseModel):
    model_config = ConfigDict(validate_default=True, use_enum_values=True)

    SECTIONS: ClassVar[dict] = {}


class SavForm(_Form):
    SECTIONS: ClassVar[dict] = {
        "client": ("client_name", "site", "client_email", "phone", "address"),
        "systeme": ("system_type", "system_brand", "system_model"),
        "demande": (
            "problem_desc", "observations", "urgent",
            "assigned_user_id", "estimated_duration",
        ),
    }

    client_name: Optional[str] = None
    site: Optional[str] = None
    client_email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    system_type: Optional[SystemType] = None
    system_brand: Optional[str] = None
    system_model: Optional[str] = None
    problem_desc: Optional[str] = None
    observations: Optional[str] = None
    urgent: bool = False
    assigned_user_id: Optional[str] = None
    estimated_duration: Optional[int] = None
    extrabat_id: Optional[int] = None
    extrabat_ouvrage_id: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator(
        "client_name", "site", "client_email", "phone", "address", "system_type",
        "system_brand", "system_model", "problem_desc", "observations",
        "assigned_user_id", "estimated_duration", "extrabat_id",
        "extrabat_ouvrage_id", "latitude", "longitude",
        mode="before",
    )
    @classmethod
    def blank_is_none(cls, v):
        return _blank_to_none(v)

    @field_validator("client_name")
    @classmethod
    def client_name_required(cls, v):
        return _require(v, "Le nom du client est obligatoire")

    @field_validator("client_email")
    @classmethod
    def email_format(cls, v):
        if v is not None and not _EMAIL.match(v):
            raise ValueError("Email invalide")
        return v

    @field_validator("system_type")
    @classmethod
    def system_type_required(cls, v):
        return _require(v, "Le type de système est obligatoire")

    @field_validator("problem_desc")
    @classmethod
    def problem_required(cls, v):
        return _require(v, "La description du problème est obligatoire")


class MaintenanceForm(_Form):
    SECTIONS: ClassVar[dict] = {
        "client": ("client_name", "site", "phone", "address"),
        "systeme": (
            "system_type", "system_brand", "system_model",
            "battery_installation_year",
        ),
        "suivi": ("assigned_user_id", "status", "priority", "observations"),
        BILLING_SECTION: BILLING_FIELDS,
    }

    client_name: Optional[str] = None
    site: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    system_type: Optional[SystemType] = None
    system_brand: Optional[str] = None
    system_model: Optional[str] = None
    battery_installation_year: Optional[int] = None
    observations: Optional[str] = None
    assigned_user_id: Optional[str] = None
    status: ContractStatus = ContractStatus.A_REALISER
    priority: bool = False
    estimated_duration: Optional[int] = None

    # Facturation
    annual_amount: Optional[float] = None
    billing_mode: Optional[BillingMode] = None
    invoice_sent: bool = False
    invoice_paid: bool = False
    client_type: Optional[ClientType] = None
    last_year_visit_date: Optional[str] = None

    @field_validator(
        "client_name", "site", "phone", "address", "system_type",
        "system_brand", "system_model", "battery_installation_year",
        "observations", "assigned_user_id", "estimated_duration",
        "annual_amount", "billing_mode", "client_type", "last_year_visit_date",
        mode="before",
    )
    @classmethod
    def blank_is_none(cls, v):
        return _blank_to_none(v)

    @field_validator("client_name")
    @classmethod
    def client_name_required(cls, v):
        return _require(v, "Le nom du client est obligatoire")

    @field_validator("system_type")
    @classmethod
    def system_type_required(cls, v):
        return _require(v, "Le type de système est obligatoire")

    @field_validator("battery_installation_year")
    @classmethod
    def year_in_range(cls, v):
        if v is None:
            return v
        if v < MIN_BATTERY_YEAR:
            raise ValueError(f"L'année doit être supérieure à {MIN_BATTERY_YEAR}")
        if v > datetime.now().year:
            raise ValueError("L'année ne peut pas être dans le futur")
        return v

    @field_validator("annual_amount")
    @classmethod
    def amount_positive(cls, v):
        if v is not None and v < 0:
            raise ValueError("Le montant doit être positif")
        return v


class CallNoteForm(_Form):
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    call_subject: Optional[str] = None
    notes: Optional[str] = None
    sav_request_id: Optional[str] = None
    maintenance_contract_id: Optional[str] = None
    priority: CallNotePriority = CallNotePriority.NORMAL

    @field_validator(
        "client_name", "client_phone", "call_subject", "notes",
        "sav_request_id", "maintenance_contract_id",
        mode="before",
    )
    @classmethod
    def blank_is_none(cls, v):
        return _blank_to_none(v)

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v):
        return v or CallNotePriority.NORMAL


class UserForm(_Form):
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: UserRole = UserRole.TECHNICIEN
    phone: Optional[str] = None
    extrabat_code: Optional[str] = None

    @field_validator("email", "display_name", "phone", "extrabat_code", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def email_required(cls, v):
        _require(v, "L'email est obligatoire")
        if not _EMAIL.match(v):
            raise ValueError("Email invalide")
        return v

    @field_validator("phone")
    @classmethod
    def phone_e164(cls, v):
        if v is not None and not _E164.match(v):
            raise ValueError(
                "Le numéro de téléphone doit être au format international (+33123456789)"
            )
        return v


# ─────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────

@dataclass
class FormResult:
    ok: bool
    data: dict = field(default_factory=dict)
    errors: dict = field(default_factory=dict)

    @property
    def first_error(self) -> Optional[str]:
        return next(iter(self.errors.values()), None)


def validate_form(form_cls, data: dict) -> FormResult:
    """
    errors : {champ: message}, dans l'ordre des champs du formulaire.
    Un seul message par champ (le premier levé).
    """
    try:
        form = form_cls(**data)
    except ValidationError as e:
        errors = {}
        for error in e.errors():
            name = str(error["loc"][0]) if error["loc"] else "__form__"
            if name not in errors:
                errors[name] = _error_message(error)

        order = list(form_cls.model_fields)
        ordered = dict(sorted(
            errors.items(),
            key=lambda item: order.index(item[0]) if item[0] in order else len(order)
        ))
        return FormResult(ok=False, errors=ordered)

    return FormResult(ok=True, data=form.model_dump())


def _error_message(error: dict) -> str:
    cause = (error.get("ctx") or {}).get("error")
    if isinstance(cause, ValueError):
        return str(cause)
    return INVALID_VALUE


def visible_sections(form_cls, session) -> list[str]:
    """La section facturation n'est montrée qu'à l'identité autorisée."""
    can_bill = session is not None and session.can_access_billing_info
    return [
        name for name in form_cls.SECTIONS
        if name != BILLING_SECTION or can_bill
    ]
