import httpx

from .base import FetchContext, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..core.utils import fold_accents
from ..schemas import RiskItem, RisksSection

# flag -> substrings of the (accent-folded, lowercased) GASPAR risk label
RISK_FLAGS = {
    "flood": ("inondation", "submersion", "crue"),
    "seismic": ("seisme", "sismi"),
    "radon": ("radon",),
    "ground_movement": ("mouvement de terrain", "effondrement", "cavite", "eboulement", "glissement"),
    "clay": ("argile", "retrait-gonflement", "retrait gonflement"),
    "industrial": ("industriel", "seveso", "nucleaire", "transport de marchandises dangereuses"),
}

def _risk_items(payload) -> list[RiskItem]:
    # GASPAR answers {"data": [{..., "risques_detail": [...]}]}; older
    # deployments return the detail rows directly.
    rows = payload.get("data", []) if isinstance(payload, dict) else payload
    items: list[RiskItem] = []
    for row in rows:
        details = row.get("risques_detail")
        for d in details if details is not None else [row]:
            label = d.get("libelle_risque_long") or d.get("libelle_risque") or d.get("libelle")
            if label and all(i.label != label for i in items):
                code = d.get("num_risque")
                items.append(RiskItem(code=None if code is None else str(code), label=label))
    return items

def risks_from_items(items: list[RiskItem]) -> RisksSection:
    labels = [fold_accents(i.label).lower() for i in items]
    flags = {
        flag: any(n in label for label in labels for n in needles)
        for flag, needles in RISK_FLAGS.items()
    }
    return RisksSection(risks=items, **flags)

class GeorisquesAdapter(SourceAdapter):
    """Natural and technological risks registered for the commune at the point."""
    section = "risks"
    label = "Géorisques"

    def __init__(self, base_url: str = settings.RISKS_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = f"{base_url.rstrip('/')}/gaspar/risques"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> RisksSection:
        p = ctx.location.point
        j = await fetch_json(client, self.source_url, params={"latlon": f"{p.lon},{p.lat}"})
        return risks_from_items(_risk_items(j))
