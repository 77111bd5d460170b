import logging
import re

import httpx

from .base import Geocoder, GeoPoint, ResolvedLocation
from .http import fetch_json
from ..core.config import settings
from ..core.errors import AddressNotFound
from ..core.utils import strip_unit_markers

logger = logging.getLogger(__name__)

def resolution_attempts(raw: str) -> list[str]:
    """
    Ordered query strings to try against the address database, most
    faithful first; the geocoder stops at the first one with candidates.

    1. the text as typed (whitespace collapsed)
    2. the text without unit markers ("apt 4", "bât B", "#12")
    3. the street part (before the first comma) plus the postcode, if any
    """
    text = " ".join(raw.split())
    attempts = [text, strip_unit_markers(text)]
    head, sep, tail = text.partition(",")
    if sep:
        street = strip_unit_markers(head)
        postcode = re.search(r"\b\d{5}\b", tail)
        attempts.append(f"{street} {postcode.group(0)}" if postcode else street)
    out: list[str] = []
    for attempt in attempts:
        if attempt and attempt not in out:
            out.append(attempt)
    return out

def location_from_feature(feature: dict) -> ResolvedLocation:
    """Address-database GeoJSON feature -> ResolvedLocation."""
    props = feature["properties"]
    lon, lat = feature["geometry"]["coordinates"][:2]
    # context looks like "75, Paris, Île-de-France" (department code, name, region)
    context = [p.strip() for p in (props.get("context") or "").split(",") if p.strip()]
    return ResolvedLocation(
        normalized_address=props["label"],
        point=GeoPoint(lat=float(lat), lon=float(lon)),
        citycode=props.get("citycode") or "",
        postcode=props.get("postcode") or "",
        city=props.get("city") or props.get("name") or "",
        department=context[0] if context else None,
        region=context[-1] if len(context) >= 2 else None,
        house_number=props.get("housenumber"),
        street=props.get("street") or (props.get("name") if props.get("type") == "street" else None),
    )

class BanGeocoder(Geocoder):
    """
    National address database (BAN) search. The first candidate is taken as
    authoritative; disambiguation is left to clients.
    """
    def __init__(self, base_url: str = settings.GEO_BASE_URL):
        self.base_url = base_url.rstrip("/")

    @property
    def source_url(self) -> str:
        return f"{self.base_url}/search/"

    async def search(self, client: httpx.AsyncClient, q: str) -> list[dict]:
        j = await fetch_json(client, self.source_url, params={"q": q, "limit": 1})
        return j.get("features") or []

    async def resolve(self, client: httpx.AsyncClient, address: str) -> ResolvedLocation:
        for attempt in resolution_attempts(address):
            try:
                features = await self.search(client, attempt)
                if features:
                    location = location_from_feature(features[0])
                    logger.info("geocoded %r -> %s", attempt, location.normalized_address)
                    return location
            except (httpx.HTTPError, KeyError, TypeError, ValueError, IndexError) as exc:
                raise AddressNotFound(f"Geocoding failed: {exc.__class__.__name__}") from exc
        raise AddressNotFound("Address not found")

def geocode_client() -> Geocoder:
    """
    Factory so the provider URL stays a settings concern.
    """
    return BanGeocoder(settings.GEO_BASE_URL)
