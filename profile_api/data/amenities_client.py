import httpx

from .base import FetchContext, GeoPoint, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..core.utils import haversine_m
from ..schemas import GPS, AmenitiesSection, Amenity

NEAREST = 5

def overpass_query(point: GeoPoint, radius_m: int) -> str:
    around = f"(around:{radius_m},{point.lat},{point.lon})"
    return (
        "[out:json][timeout:25];("
        f'node["shop"="supermarket"]{around};'
        f'node["amenity"="bus_station"]{around};'
        f'node["amenity"="subway_entrance"]{around};'
        f'node["railway"="station"]{around};'
        f'node["leisure"="park"]{around};'
        ");out;"
    )

def classify(tags: dict) -> tuple[str, str] | None:
    """(bucket, kind) for an OSM element, or None when it is not tracked."""
    if tags.get("shop") == "supermarket":
        return "supermarkets", "supermarket"
    if tags.get("railway") == "station":
        return "transit", "station"
    if tags.get("amenity") in ("bus_station", "subway_entrance"):
        return "transit", tags["amenity"]
    if tags.get("leisure") == "park":
        return "parks", "park"
    return None

def amenities_from_elements(elements: list[dict], origin: GeoPoint) -> AmenitiesSection:
    buckets: dict[str, list[Amenity]] = {"supermarkets": [], "transit": [], "parks": []}
    for el in elements:
        if el.get("lat") is None or el.get("lon") is None:
            continue
        tags = el.get("tags") or {}
        found = classify(tags)
        if found is None:
            continue
        bucket, kind = found
        buckets[bucket].append(Amenity(
            name=tags.get("name") or tags.get("name:fr"),
            kind=kind,
            distance_m=haversine_m(origin.lat, origin.lon, el["lat"], el["lon"]),
            gps=GPS(lat=el["lat"], lon=el["lon"]),
        ))
    # sort before truncating: the nearest five, not the first five returned
    return AmenitiesSection(**{
        name: sorted(items, key=lambda a: a.distance_m)[:NEAREST]
        for name, items in buckets.items()
    })

class OverpassAdapter(SourceAdapter):
    """Everyday amenities around the point from OpenStreetMap (Overpass API)."""
    section = "amenities"
    label = "OpenStreetMap"

    def __init__(self, url: str = settings.OVERPASS_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.source_url = url

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> AmenitiesSection:
        p = ctx.location.point
        j = await fetch_json(
            client, self.source_url, method="POST",
            data={"data": overpass_query(p, ctx.radius_m)},
        )
        return amenities_from_elements(j.get("elements") or [], p)
