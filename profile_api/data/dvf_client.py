import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Optional, Sequence

import httpx

from .base import FetchContext, SourceAdapter, SourceError, SourceOutcome, TransactionRecord
from .http import fetch_json
from ..core.config import settings
from ..core.utils import fold_accents, round_half_up
from ..schemas import MarketSection, Sale
from ..services.reconciler import (
    AddressTarget, PlausibilityBounds, Reconciliation, filter_plausible, reconcile, within_years,
)

logger = logging.getLogger(__name__)

_NATURES = (
    ("vente", "sale"),          # includes VEFA and building-land sales
    ("echange", "exchange"),
    ("donation", "donation"),
    ("adjudication", "adjudication"),
    ("expropriation", "expropriation"),
)

_PROPERTY_TYPES = {"maison": "house", "appartement": "apartment"}

def normalize_nature(raw: Optional[str]) -> str:
    text = fold_accents(raw or "").lower()
    for needle, code in _NATURES:
        if needle in text:
            return code
    return "other"

def _to_float(value) -> float:
    if value in (None, ""):
        return 0.0
    return float(str(value).replace(",", "."))

def record_from_mutation(m: dict) -> Optional[TransactionRecord]:
    """
    One registry row -> TransactionRecord. Rows without a usable date are
    dropped; zero or missing amounts are kept and left to the plausibility
    filter.
    """
    raw_date = m.get("date_mutation")
    if not raw_date:
        return None
    try:
        sold_on = date.fromisoformat(str(raw_date)[:10])
        price = _to_float(m.get("valeur_fonciere"))
        surface = _to_float(m.get("surface_reelle_bati"))
    except ValueError:
        return None
    number = m.get("adresse_numero", m.get("numero_voie"))
    street = m.get("adresse_nom_voie") or m.get("voie")
    type_local = fold_accents(m.get("type_local") or "").lower()
    return TransactionRecord(
        date=sold_on,
        price=price,
        surface_m2=surface,
        street_number=None if number in (None, "") else str(number),
        street_name=street,
        nature=normalize_nature(m.get("nature_mutation")),
        source_id=m.get("id_mutation"),
        property_type=_PROPERTY_TYPES.get(type_local, "other" if type_local else None),
    )

def to_sale(r: TransactionRecord) -> Sale:
    number = r.street_number.split(".")[0] if r.street_number else ""
    return Sale(
        date=r.date,
        price=r.price,
        surface_m2=r.surface_m2,
        price_per_m2=round_half_up(r.price_per_m2),
        address=" ".join(p for p in (number, r.street_name or "") if p),
        property_type=r.property_type,
        source_id=r.source_id,
    )

def market_section(
    rec: Reconciliation,
    mode: str,
    parcel_section: Optional[str] = None,
    search_radius_m: Optional[int] = None,
) -> MarketSection:
    return MarketSection(
        mode=mode,
        parcel_section=parcel_section,
        search_radius_m=search_radius_m,
        count=rec.count,
        average_price_per_m2=rec.average_price_per_m2,
        median_price_per_m2=rec.median_price_per_m2,
        median_price_per_m2_1y=rec.median_price_per_m2_1y,
        volume_3y=rec.volume_3y,
        trend=rec.trend,
        last_sale=to_sale(rec.last_sale) if rec.last_sale else None,
        last_sale_is_exact=rec.last_sale_is_exact,
        exact_matches=[to_sale(r) for r in rec.exact_matches],
        street_matches=[to_sale(r) for r in rec.street_matches],
        sample=[to_sale(r) for r in rec.sample],
    )

async def _settled(outcome):
    return outcome

class DvfMarketAdapter(SourceAdapter):
    """
    Sales registry (DVF) for the cadastral section of the address, reconciled
    into the property's own history and neighborhood statistics.

    When the section is unknown (parcel lookup failed) the distance-indexed
    registry around the point is used instead and no exact match is attempted.
    The search radius widens over `radius_steps` until one answer holds
    enough recent sales; otherwise the answer with the most sales from the
    last three years is kept.
    """
    section = "market"
    label = "DVF"

    def __init__(
        self,
        base_url: str = settings.DVF_BASE_URL,
        radius_url: str = settings.DVF_RADIUS_BASE_URL,
        bounds: PlausibilityBounds | None = None,
        timeout: float | None = None,
        radius_steps: Sequence[int] | None = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self.radius_url = radius_url
        self.source_url = self.base_url
        self.bounds = bounds or PlausibilityBounds.from_settings()
        self.radius_steps = list(radius_steps or settings.DVF_RADIUS_STEPS_M)
        self.today = today

    async def fetch(self, client: httpx.AsyncClient, ctx: FetchContext) -> SourceOutcome:
        # The per-call timeout starts once the parcel lookup has settled; the
        # lookup is bounded by its own timeout and by the request budget.
        if ctx.parcel is not None:
            parcel = await ctx.parcel
            ctx = replace(ctx, parcel=_settled(parcel))
        return await super().fetch(client, ctx)

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> MarketSection:
        loc = ctx.location
        parcel = await ctx.parcel if ctx.parcel is not None else None
        if parcel is not None and parcel.ok:
            section_id = parcel.value.section_id
            j = await fetch_json(client, f"{self.base_url}/mutations3/{loc.citycode}/{section_id}")
            rows = j.get("mutations") or []
            records = [r for r in map(record_from_mutation, rows) if r]
            rec = reconcile(records, AddressTarget.from_location(loc), self.bounds, self.today())
            return market_section(rec, "parcel", section_id)

        logger.info("no cadastral section, falling back to radius search", extra={"section": self.section})
        records, distance = await self._radius_search(client, ctx)
        rec = reconcile(records, AddressTarget(house_number=None, street_token=""), self.bounds, self.today())
        return market_section(rec, "radius", search_radius_m=distance)

    async def _radius_search(self, client: httpx.AsyncClient, ctx: FetchContext) -> tuple[list[TransactionRecord], int]:
        loc = ctx.location
        today = self.today()
        best: list[TransactionRecord] | None = None
        best_distance, best_recent = 0, -1
        error: httpx.HTTPError | None = None
        for distance in self.radius_steps:
            try:
                j = await fetch_json(
                    client,
                    self.radius_url,
                    params={
                        "code_commune": loc.citycode,
                        "lat": loc.point.lat,
                        "lon": loc.point.lon,
                        "distance": distance,
                    },
                )
            except httpx.HTTPError as exc:
                logger.info("radius search failed at %dm, widening", distance, extra={"section": self.section})
                error = exc
                continue
            rows = j if isinstance(j, list) else (j.get("resultats") or [])
            records = [r for r in map(record_from_mutation, rows) if r]
            plausible = filter_plausible(records, self.bounds)
            recent_3y = within_years(plausible, today, 3)
            recent_1y = within_years(recent_3y, today, 1)
            enough = len(recent_1y) >= settings.DVF_MIN_SALES_1Y or (
                best is None and len(recent_3y) >= settings.DVF_MIN_SALES_3Y
            )
            if enough:
                return records, distance
            if len(recent_3y) > best_recent:
                best, best_distance, best_recent = records, distance, len(recent_3y)

        if best is None:
            # every step failed
            raise error or SourceError("unavailable", f"{self.label} radius search has no step configured")
        return best, best_distance
