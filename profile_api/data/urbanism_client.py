import json

import httpx

from .base import FetchContext, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..schemas import UrbanismSection, Zone

class GpuZoningAdapter(SourceAdapter):
    """Local urban plan (PLU) zones covering the point, from the Géoportail de l'Urbanisme."""
    section = "urbanism"
    label = "Géoportail de l'Urbanisme"

    def __init__(self, base_url: str = settings.URBANISM_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = f"{base_url.rstrip('/')}/zone-urba"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> UrbanismSection:
        p = ctx.location.point
        geom = json.dumps({"type": "Point", "coordinates": [p.lon, p.lat]})
        j = await fetch_json(client, self.source_url, params={"geom": geom})
        zones = []
        for feature in j.get("features") or []:
            props = feature["properties"]
            zones.append(Zone(
                code=props.get("libelle") or props.get("typezone"),
                label=props.get("libelong"),
                doc_url=props.get("urlfic"),
            ))
        return UrbanismSection(zones=zones)
