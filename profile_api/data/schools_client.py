import httpx

from .base import FetchContext, GeoPoint, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..core.utils import haversine_m
from ..schemas import GPS, EducationSection, School

def school_from_record(record: dict, origin: GeoPoint) -> School:
    fields = record.get("fields") or {}
    coords = (record.get("geometry") or {}).get("coordinates") or []
    gps = distance = None
    if len(coords) >= 2:
        lon, lat = float(coords[0]), float(coords[1])
        gps = GPS(lat=lat, lon=lon)
        distance = haversine_m(origin.lat, origin.lon, lat, lon)
    kind = fields.get("type_etablissement")
    status = fields.get("statut_public_prive")
    postcode = fields.get("code_postal")
    return School(
        name=fields.get("appellation_officielle") or fields.get("nom_etablissement") or "École",
        kind=kind.lower() if kind else None,
        public_private=status.lower() if status else None,
        address=fields.get("adresse_1") or fields.get("adresse_2"),
        postcode=str(postcode) if postcode is not None else None,
        city=fields.get("nom_commune") or fields.get("commune"),
        gps=gps,
        distance_m=distance,
    )

class SchoolsAdapter(SourceAdapter):
    """Schools of the national education directory within the query radius, nearest first."""
    section = "education"
    label = "Annuaire de l'éducation"

    def __init__(self, base_url: str = settings.SCHOOLS_BASE_URL, max_rows: int = settings.SCHOOLS_MAX_ROWS, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = f"{base_url.rstrip('/')}/search/"
        self.max_rows = max_rows

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> EducationSection:
        p = ctx.location.point
        j = await fetch_json(client, self.source_url, params={
            "dataset": "fr-en-annuaire-education",
            "geofilter.distance": f"{p.lat},{p.lon},{ctx.radius_m}",
            "rows": self.max_rows,
        })
        schools = [school_from_record(r, p) for r in j.get("records") or []]
        # schools without coordinates go last
        schools.sort(key=lambda s: (s.distance_m is None, s.distance_m or 0))
        return EducationSection(schools=schools)
