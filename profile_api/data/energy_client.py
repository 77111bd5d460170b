import httpx

from .base import FetchContext, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..schemas import EnergySection

def _first(row: dict, *keys):
    for k in keys:
        if row.get(k) not in (None, ""):
            return row[k]
    return None

def energy_from_row(row: dict) -> EnergySection:
    # the dataset renamed its columns between DPE v1 and v2
    surface = _first(row, "surface_habitable_logement", "surface_habitable")
    dpe_id = _first(row, "numero_dpe", "id_dpe", "_id")
    return EnergySection(
        found=True,
        dpe_id=str(dpe_id) if dpe_id is not None else None,
        energy_class=_first(row, "etiquette_dpe", "classe_consommation_energie", "classe_consommation"),
        ghg_class=_first(row, "etiquette_ges", "classe_emission_ges", "classe_ges"),
        date=_first(row, "date_etablissement_dpe", "date_etablissement"),
        surface_m2=float(surface) if surface is not None else None,
        housing_type=_first(row, "type_batiment", "type_logement"),
    )

class AdemeDpeAdapter(SourceAdapter):
    """
    Most relevant energy performance diagnosis (DPE) for the address, from
    the ADEME open dataset full-text search. No match is a valid answer
    (found=False), not a failure.
    """
    section = "energy"
    label = "ADEME DPE"

    def __init__(self, base_url: str = settings.ENERGY_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = f"{base_url.rstrip('/')}/lines"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> EnergySection:
        loc = ctx.location
        params = {"q": loc.normalized_address, "size": 1}
        if loc.citycode:
            params["qs"] = f"code_insee_ban:{loc.citycode}"
        j = await fetch_json(client, self.source_url, params=params)
        rows = j.get("results") or []
        if not rows:
            return EnergySection(found=False)
        return energy_from_row(rows[0])
