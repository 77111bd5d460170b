from .amenities_client import OverpassAdapter
from .atmo_client import AtmoAdapter
from .base import SourceAdapter
from .cadastre_client import CadastreParcelResolver
from .dvf_client import DvfMarketAdapter
from .energy_client import AdemeDpeAdapter
from .ownership_client import PappersOwnershipAdapter
from .risks_client import GeorisquesAdapter
from .safety_client import SafetyAdapter
from .schools_client import SchoolsAdapter
from .urbanism_client import GpuZoningAdapter

def build_adapters() -> list[SourceAdapter]:
    """One adapter per profile section, in response order; URLs come from settings."""
    return [
        GeorisquesAdapter(),
        AdemeDpeAdapter(),
        DvfMarketAdapter(),
        SchoolsAdapter(),
        AtmoAdapter(),
        OverpassAdapter(),
        SafetyAdapter(),
        PappersOwnershipAdapter(),
        GpuZoningAdapter(),
    ]

def parcel_resolver() -> CadastreParcelResolver:
    return CadastreParcelResolver()
