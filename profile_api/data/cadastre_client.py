import json

import httpx

from .base import CadastralParcel, FetchContext, SourceAdapter, SourceError
from .http import fetch_json
from ..core.config import settings

class CadastreParcelResolver(SourceAdapter):
    """
    Cadastral section containing the geocoded point (IGN apicarto
    `division` layer, point-in-polygon on their side).

    Settles like any adapter; a failure only degrades the market section
    to neighborhood-only reporting.
    """
    section = "parcel"
    label = "Cadastre IGN"

    def __init__(self, base_url: str = settings.CADASTRE_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self.source_url = f"{self.base_url}/division"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> CadastralParcel:
        point = ctx.location.point
        geom = json.dumps({"type": "Point", "coordinates": [point.lon, point.lat]})
        j = await fetch_json(client, self.source_url, params={"geom": geom})
        features = j.get("features") or []
        if not features:
            raise SourceError("unavailable", f"{self.label}: no section at this point")
        props = features[0]["properties"]
        return CadastralParcel(
            commune_code=props.get("code_insee") or ctx.location.citycode,
            section=str(props["section"]).zfill(2),
            prefix=props.get("com_abs") or "000",
        )
