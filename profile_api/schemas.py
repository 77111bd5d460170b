from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, Field

class Language(str, Enum):
    fr = "fr"
    en = "en"

class ProfileQuery(BaseModel):
    address: str
    radius_m: int
    language: Language = Language.fr

class GPS(BaseModel):
    lat: float
    lon: float

class Location(BaseModel):
    normalized_address: str
    gps: GPS
    city: str | None = None
    postcode: str | None = None
    citycode: str | None = None
    department: str | None = None
    region: str | None = None
    house_number: str | None = None
    street: str | None = None

# ----- Sections -----
# Every field has a default so `empty()` yields the documented typed-empty
# shape. available=False means "could not be retrieved"; available=True with
# empty content means the provider answered and had nothing.

class Section(BaseModel):
    available: bool = True

    @classmethod
    def empty(cls):
        return cls(available=False)

class RiskItem(BaseModel):
    code: str | None = None
    label: str

class RisksSection(Section):
    risks: list[RiskItem] = Field(default_factory=list)
    flood: bool = False
    seismic: bool = False
    radon: bool = False
    ground_movement: bool = False
    clay: bool = False
    industrial: bool = False

class EnergySection(Section):
    found: bool = False
    dpe_id: str | None = None
    energy_class: str | None = None
    ghg_class: str | None = None
    date: str | None = None
    surface_m2: float | None = None
    housing_type: str | None = None

class Sale(BaseModel):
    date: date
    price: float
    surface_m2: float
    price_per_m2: int
    address: str
    property_type: str | None = None
    source_id: str | None = None

class MarketSection(Section):
    mode: str | None = None              # "parcel" | "radius"
    parcel_section: str | None = None
    search_radius_m: int | None = None   # radius mode only
    count: int = 0
    average_price_per_m2: int = 0
    median_price_per_m2: int | None = None
    median_price_per_m2_1y: int | None = None
    volume_3y: int = 0
    trend: str | None = None             # "up" | "down" | "stable"
    last_sale: Sale | None = None
    last_sale_is_exact: bool = False
    exact_matches: list[Sale] = Field(default_factory=list)
    street_matches: list[Sale] = Field(default_factory=list)
    sample: list[Sale] = Field(default_factory=list)

class School(BaseModel):
    name: str
    kind: str | None = None
    public_private: str | None = None
    address: str | None = None
    postcode: str | None = None
    city: str | None = None
    gps: GPS | None = None
    distance_m: int | None = None

class EducationSection(Section):
    schools: list[School] = Field(default_factory=list)

class AirQualitySection(Section):
    index: int | None = None
    label: str | None = None
    date: str | None = None

class Amenity(BaseModel):
    name: str | None = None
    kind: str | None = None
    distance_m: int
    gps: GPS

class AmenitiesSection(Section):
    supermarkets: list[Amenity] = Field(default_factory=list)
    transit: list[Amenity] = Field(default_factory=list)
    parks: list[Amenity] = Field(default_factory=list)

class SeriesPoint(BaseModel):
    year: int
    value: float

class SafetyIndicator(BaseModel):
    category: str
    total_10y: float | None = None
    rate_local_per_10k: float | None = None
    rate_national_per_10k: float | None = None
    level_vs_national: str | None = None  # "low" | "medium" | "high"
    series: list[SeriesPoint] = Field(default_factory=list)

class SafetySection(Section):
    scope: str = "commune"
    citycode: str | None = None
    period_from: str | None = None
    period_to: str | None = None
    indicators: list[SafetyIndicator] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

class Owner(BaseModel):
    name: str | None = None
    siren: str | None = None
    legal_form: str | None = None
    address: str | None = None

class Coownership(BaseModel):
    name: str | None = None
    registration_number: str | None = None
    total_lots: int | None = None
    housing_lots: int | None = None
    manager: str | None = None

class OwnershipSection(Section):
    parcel_ref: str | None = None
    owners: list[Owner] = Field(default_factory=list)
    coownerships: list[Coownership] = Field(default_factory=list)

class Zone(BaseModel):
    code: str | None = None
    label: str | None = None
    doc_url: str | None = None

class UrbanismSection(Section):
    zones: list[Zone] = Field(default_factory=list)

SECTION_MODELS: dict[str, type[Section]] = {
    "risks": RisksSection,
    "energy": EnergySection,
    "market": MarketSection,
    "education": EducationSection,
    "air_quality": AirQualitySection,
    "amenities": AmenitiesSection,
    "safety": SafetySection,
    "ownership": OwnershipSection,
    "urbanism": UrbanismSection,
}

# ----- Profile -----

class Recommendation(BaseModel):
    code: str
    title: str
    reason: str
    priority: int = Field(ge=1, le=3)
    related_sections: list[str] = Field(default_factory=list)

class Recommendations(BaseModel):
    summary: str = ""
    items: list[Recommendation] = Field(default_factory=list)

class ProvenanceRecord(BaseModel):
    section: str
    source: str
    timestamp: datetime

class Meta(BaseModel):
    generated_at: datetime
    processing_ms: int

class PropertyProfile(BaseModel):
    query: ProfileQuery
    location: Location
    risks: RisksSection
    energy: EnergySection
    market: MarketSection
    education: EducationSection
    air_quality: AirQualitySection
    amenities: AmenitiesSection
    safety: SafetySection
    ownership: OwnershipSection
    urbanism: UrbanismSection
    recommendations: Recommendations = Field(default_factory=Recommendations)
    warnings: list[str] = Field(default_factory=list)
    provenance: list[ProvenanceRecord] = Field(default_factory=list)
    meta: Meta

class MarketSummaryResponse(BaseModel):
    location: Location
    market: MarketSection
    warnings: list[str] = Field(default_factory=list)
    provenance: list[ProvenanceRecord] = Field(default_factory=list)

class ErrorDetail(BaseModel):
    code: str
    message: str

class ErrorResponse(BaseModel):
    error: ErrorDetail
