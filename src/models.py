# models.py

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Optional
from enum import Enum


# ─────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────

class SavStatus(str, Enum):
    NOUVELLE = "nouvelle"
    EN_COURS = "en_cours"
    TERMINEE = "terminee"
    ARCHIVEE = "archivee"


class BillingStatus(str, Enum):
    TO_BILL = "to_bill"
    BILLED = "billed"


class ContractStatus(str, Enum):
    A_REALISER = "a_realiser"
    PREVUE = "prevue"
    REALISEE = "realisee"


class CallNotePriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(str, Enum):
    TECHNICIEN = "technicien"
    MANAGER = "manager"
    ADMIN = "admin"


class SystemType(str, Enum):
    SSI = "ssi"
    TYPE4 = "type4"
    INTRUSION = "intrusion"
    VIDEO = "video"
    CONTROLE_ACCES = "controle_acces"
    INTERPHONE = "interphone"
    PORTAIL = "portail"
    AUTRE = "autre"


class BillingMode(str, Enum):
    DEBUT_ANNEE = "debut_annee"
    GRENKE = "grenke"
    SUR_DEVIS = "sur_devis"
    APRES_VISITE = "apres_visite"


class ClientType(str, Enum):
    PARTICULIER = "particulier"
    PRO = "pro"
    COLLECTIVITE = "collectivite"


class InterventionType(str, Enum):
    SAV = "sav"
    MAINTENANCE = "maintenance"


# ─────────────────────────────────────────
# LIBELLÉS (affichage)
# ─────────────────────────────────────────

SYSTEM_TYPE_LABELS = {
    "ssi": "Alarme incendie type SSI",
    "type4": "Alarme évacuation type 4",
    "intrusion": "Alarme intrusion",
    "video": "Vidéosurveillance",
    "controle_acces": "Contrôle d'accès",
    "interphone": "Interphone",
    "portail": "Portail",
    "autre": "Autre",
}

STATUS_LABELS = {
    "nouvelle": "Nouvelle",
    "en_cours": "En cours",
    "terminee": "Terminée",
    "archivee": "Archivée",
}

MAINTENANCE_STATUS_LABELS = {
    "a_realiser": "À réaliser",
    "prevue": "Prévue",
    "realisee": "Réalisée",
}

BILLING_MODE_LABELS = {
    "debut_annee": "Facturation début d'année",
    "grenke": "Grenke",
    "sur_devis": "Sur devis",
    "apres_visite": "Après la visite",
}

CLIENT_TYPE_LABELS = {
    "particulier": "Particulier",
    "pro": "Pro",
    "collectivite": "Collectivité",
}

OTHER_BRAND = "Autre"


# ─────────────────────────────────────────
# UTILISATEURS
# ─────────────────────────────────────────

@dataclass
class User:
    id: str
    email: str
    role: UserRole = UserRole.TECHNICIEN
    display_name: Optional[str] = None
    phone: Optional[str] = None          # E.164 (+33...)
    extrabat_code: Optional[str] = None  # identifiant technicien côté Extrabat
    created_at: Optional[str] = None

    @property
    def label(self) -> str:
        return self.display_name or self.email or ""


# ─────────────────────────────────────────
# INTERVENTIONS
# ─────────────────────────────────────────

@dataclass
class InterventionPhoto:
    id: str
    intervention_id: str
    intervention_type: InterventionType
    file_path: str
    file_name: str = ""
    file_size: int = 0
    mime_type: str = ""
    uploaded_by: Optional[str] = None
    include_in_pdf: bool = False
    created_at: Optional[str] = None
    url: Optional[str] = None            # URL publique du bucket


@dataclass
class BatteryProduct:
    id: str
    name: str
    ref_extrabat: str = ""
    description: str = ""
    unit_price: float = 0.0
    vat_rate: float = 20.0
    unit: str = ""
    is_active: bool = True


@dataclass
class InterventionBattery:
    intervention_id: str
    intervention_type: InterventionType
    battery_product_id: str
    quantity: int = 1
    unit_price: float = 0.0
    id: Optional[str] = None
    battery_product: Optional[BatteryProduct] = None


@dataclass
class Intervention:
    id: str
    parent_id: str                        # sav_request_id ou contract_id
    intervention_type: InterventionType = InterventionType.SAV
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    scheduled_at: Optional[str] = None
    technician_id: Optional[str] = None
    notes: str = ""
    rapport_brut: str = ""
    rapport_reformule: str = ""
    has_battery_change: bool = False
    extrabat_intervention_id: Optional[str] = None
    created_at: Optional[str] = None

    # Enrichissement côté client
    technicians: list = field(default_factory=list)
    photos: list = field(default_factory=list)
    batteries: list = field(default_factory=list)


# ─────────────────────────────────────────
# DEMANDES SAV
# ─────────────────────────────────────────

@dataclass
class ServiceRequest:
    # Identité client
    id: str
    client_name: str
    site: Optional[str] = None
    client_email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city_derived: Optional[str] = None

    # Système
    system_type: SystemType = SystemType.AUTRE
    system_brand: Optional[str] = None
    system_model: Optional[str] = None

    # Problème : brut + reformulé (un seul des deux est "officiel")
    problem_desc: str = ""
    problem_desc_reformule: Optional[str] = None
    observations: Optional[str] = None
    rapport_brut: Optional[str] = None
    rapport_reformule: Optional[str] = None

    # Drapeaux
    urgent: bool = False
    priority: bool = False
    is_quick_intervention: bool = False
    is_long_intervention: bool = False

    # Cycle de vie
    status: SavStatus = SavStatus.NOUVELLE
    billing_status: Optional[BillingStatus] = None
    requested_at: Optional[str] = None
    resolved_at: Optional[str] = None
    archived_at: Optional[str] = None
    billed_at: Optional[str] = None

    # Assignation
    assigned_user_id: Optional[str] = None
    created_by: Optional[str] = None

    # Extrabat
    extrabat_id: Optional[int] = None
    extrabat_ouvrage_id: Optional[int] = None

    # Géolocalisation
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    estimated_duration: Optional[int] = None

    created_at: Optional[str] = None

    # Enrichissement côté client
    assigned_user: Optional[dict] = None
    interventions: list = field(default_factory=list)
    has_maintenance_contract: bool = False

    @property
    def official_problem_desc(self) -> str:
        """La version reformulée fait foi dès qu'elle existe."""
        return self.problem_desc_reformule or self.problem_desc


# ─────────────────────────────────────────
# CONTRATS DE MAINTENANCE
# ─────────────────────────────────────────

@dataclass
class MaintenanceContract:
    id: str
    client_name: str
    site: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city_derived: Optional[str] = None

    system_type: SystemType = SystemType.AUTRE
    system_brand: Optional[str] = None
    system_model: Optional[str] = None
    battery_installation_year: Optional[int] = None
    observations: Optional[str] = None

    assigned_user_id: Optional[str] = None
    priority: bool = False
    status: ContractStatus = ContractStatus.A_REALISER
    created_by: Optional[str] = None

    extrabat_id: Optional[int] = None
    extrabat_ouvrage_id: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    estimated_duration: Optional[int] = None

    # Facturation (visible uniquement avec le droit billing)
    annual_amount: Optional[float] = None
    billing_mode: Optional[BillingMode] = None
    invoice_sent: bool = False
    invoice_paid: bool = False
    client_type: Optional[ClientType] = None
    last_year_visit_date: Optional[str] = None

    created_at: Optional[str] = None

    assigned_user: Optional[dict] = None
    interventions: list = field(default_factory=list)


BILLING_FIELDS = (
    "annual_amount",
    "billing_mode",
    "invoice_sent",
    "invoice_paid",
    "client_type",
    "last_year_visit_date",
)


# ─────────────────────────────────────────
# NOTES D'APPEL
# ─────────────────────────────────────────

@dataclass
class CallNote:
    id: str
    created_by: str
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    sav_request_id: Optional[str] = None
    maintenance_contract_id: Optional[str] = None
    call_subject: Optional[str] = None
    notes: Optional[str] = None
    is_completed: bool = False
    priority: CallNotePriority = CallNotePriority.NORMAL
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ─────────────────────────────────────────
# CATALOGUE MARQUES
# ─────────────────────────────────────────

@dataclass
class SystemBrand:
    id: str
    brand_name: str
    models: list = field(default_factory=list)


# ─────────────────────────────────────────
# FILTRES
# ─────────────────────────────────────────

@dataclass
class SavFilters:
    q: Optional[str] = None
    user_id: Optional[str] = None
    assigned_user_id: Optional[str] = None
    city: Optional[str] = None
    system_type: Optional[str] = None
    status: Optional[str] = None         # "active", "all" ou un SavStatus
    urgent: Optional[bool] = None
    billing_status: Optional[str] = None # "to_bill", "billed" ou "all"
    sort: str = "requested_at"
    order: str = "desc"


@dataclass
class MaintenanceFilters:
    q: Optional[str] = None
    user_id: Optional[str] = None
    city: Optional[str] = None
    system_type: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[bool] = None
    sort: str = "client_name"
    order: str = "asc"


# ─────────────────────────────────────────
# STATISTIQUES SAV
# Durées en jours entiers
# ─────────────────────────────────────────

@dataclass
class ResolutionTimeStats:
    median_time: float = 0
    avg_time_filtered: float = 0   # sans les valeurs aberrantes
    avg_time_raw: float = 0
    outliers_excluded: int = 0
    q1: float = 0
    q3: float = 0
    iqr: float = 0


@dataclass
class TechnicianStats:
    technician_name: str
    sav_count: int
    avg_resolution_time: float


@dataclass
class MonthlyResolution:
    month: str          # "mars 2025"
    median_time: float
    count: int


@dataclass
class SavStatistics:
    active_sav_count: int = 0
    avg_resolution_time: float = 0
    completed_this_week: int = 0
    completed_last_week: int = 0
    technician_stats: list[TechnicianStats] = field(default_factory=list)
    status_distribution: dict = field(default_factory=dict)
    priority_distribution: dict = field(default_factory=dict)
    avg_response_time: float = 0
    quick_intervention_rate: float = 0   # en %
    resolution_time_stats: ResolutionTimeStats = field(default_factory=ResolutionTimeStats)
    monthly_resolution_trend: list[MonthlyResolution] = field(default_factory=list)


# ─────────────────────────────────────────
# GÉOCODAGE
# ─────────────────────────────────────────

@dataclass
class GeocodedLocation:
    lat: float
    lng: float
    display_name: str


# ─────────────────────────────────────────
# CONSTRUCTION DEPUIS UNE LIGNE SUPABASE
# ─────────────────────────────────────────

def from_row(cls, row: dict):
    """
    Construit un dataclass depuis une ligne Supabase.
    Les colonnes inconnues sont ignorées, les colonnes absentes
    prennent la valeur par défaut.
    """
    known = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in row.items() if k in known}

    # Supabase renvoie null pour les booléens jamais renseignés
    for f in fields(cls):
        if f.name in kwargs and kwargs[f.name] is None and f.type is bool:
            kwargs[f.name] = False

    return cls(**kwargs)


def parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
