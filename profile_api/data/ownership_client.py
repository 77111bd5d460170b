import httpx

from .base import FetchContext, SourceAdapter, SourceError
from .http import fetch_json
from ..core.config import settings
from ..schemas import Coownership, OwnershipSection, Owner

def _int(value) -> int | None:
    return int(value) if value not in (None, "") else None

def owner_from_row(row: dict) -> Owner:
    siren = row.get("siren")
    return Owner(
        name=row.get("denomination") or row.get("nom"),
        siren=str(siren) if siren else None,
        legal_form=row.get("forme_juridique") or row.get("categorie_juridique"),
        address=row.get("adresse"),
    )

def coownership_from_row(row: dict) -> Coownership:
    manager = row.get("syndic") or row.get("mandataire")
    if isinstance(manager, dict):
        manager = manager.get("denomination") or manager.get("nom")
    return Coownership(
        name=row.get("nom") or row.get("nom_usage"),
        registration_number=row.get("numero_immatriculation"),
        total_lots=_int(row.get("nombre_total_lots")),
        housing_lots=_int(row.get("nombre_lots_habitation")),
        manager=manager,
    )

def ownership_from_parcel(parcel: dict | None) -> OwnershipSection:
    if not parcel:
        return OwnershipSection()
    ref = "".join(str(parcel.get(k) or "") for k in ("prefixe", "section", "numero_plan")) or None
    return OwnershipSection(
        parcel_ref=parcel.get("reference") or ref,
        owners=[owner_from_row(o) for o in parcel.get("proprietaires") or []],
        coownerships=[coownership_from_row(c) for c in parcel.get("coproprietes") or []],
    )

class PappersOwnershipAdapter(SourceAdapter):
    """
    Legal-entity owners and registered co-ownerships of the parcel at the
    address (Pappers Immobilier). Private individuals are never listed by
    the provider. Requires PAPPERS_API_KEY.
    """
    section = "ownership"
    label = "Pappers Immobilier"

    def __init__(self, base_url: str = settings.OWNERSHIP_BASE_URL, api_key: str | None = settings.PAPPERS_API_KEY, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = f"{base_url.rstrip('/')}/parcelles"
        self.api_key = api_key

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> OwnershipSection:
        if not self.api_key:
            raise SourceError("not_configured", f"{self.label}: no API key configured")
        j = await fetch_json(
            client, self.source_url,
            params={
                "adresse": ctx.location.normalized_address,
                "bases": "proprietaires,coproprietes",
                "par_page": 1,
            },
            headers={"api-key": self.api_key},
        )
        rows = j.get("resultats") or []
        return ownership_from_parcel(rows[0] if rows else None)
