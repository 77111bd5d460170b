import httpx

from .base import FetchContext, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..schemas import AirQualitySection

class AtmoAdapter(SourceAdapter):
    """Today's ATMO air quality index (1 good .. 6 extremely poor) for the commune."""
    section = "air_quality"
    label = "ATMO France"

    def __init__(self, base_url: str = settings.ATMO_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self.source_url = f"{self.base_url}/indices"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> AirQualitySection:
        j = await fetch_json(client, f"{self.source_url}/{ctx.location.citycode}")
        # either a single index object or a list of daily indices, latest first
        if isinstance(j, list):
            j = j[0] if j else {}
        index = j.get("indice", j.get("code_qual", j.get("valeur")))
        return AirQualitySection(
            index=int(index) if index is not None else None,
            label=j.get("qualificatif") or j.get("lib_qual") or j.get("libelle"),
            date=j.get("date_ech") or j.get("date"),
        )
