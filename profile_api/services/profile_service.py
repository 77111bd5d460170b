import asyncio
import logging
import time
from typing import Sequence

import httpx

from ..core.cache import ProfileCache, build_cache
from ..core.config import settings
from ..core.errors import AddressNotFound
from ..core.metrics import CACHE_LOOKUPS, SOURCE_OUTCOMES
from ..data.base import (
    FetchContext, Failure, Geocoder, ResolvedLocation, SourceAdapter, SourceOutcome, utcnow,
)
from ..data.cadastre_client import CadastreParcelResolver
from ..data.geocode_client import geocode_client
from ..data.sources import build_adapters, parcel_resolver
from ..schemas import (
    GPS, SECTION_MODELS, Location, MarketSummaryResponse, Meta, PropertyProfile,
    ProfileQuery, ProvenanceRecord, Section,
)
from .recommendations import compose_recommendations

logger = logging.getLogger(__name__)

WARNING_TEMPLATES = {"fr": "{label} indisponible", "en": "{label} unavailable"}

def location_model(loc: ResolvedLocation) -> Location:
    return Location(
        normalized_address=loc.normalized_address,
        gps=GPS(lat=loc.point.lat, lon=loc.point.lon),
        city=loc.city or None,
        postcode=loc.postcode or None,
        citycode=loc.citycode or None,
        department=loc.department,
        region=loc.region,
        house_number=loc.house_number,
        street=loc.street,
    )

def unavailable_warning(label: str, language: str) -> str:
    return WARNING_TEMPLATES.get(language, WARNING_TEMPLATES["fr"]).format(label=label)

class ProfileService:
    """
    Orchestrates:
      address → geocode → {parcel resolver, source adapters} fan-out → merge
      → recommendations
    and keeps assembled profiles in the snapshot cache.

    Geocoding is the only fatal step. Every other provider settles to a
    SourceOutcome; a failure empties its section and adds one warning, it
    never fails the request. The whole request is bounded by one wall-clock
    budget; providers still running at the deadline are cancelled and count
    as timeouts.
    """
    def __init__(
        self,
        cache: ProfileCache | None = None,
        geocoder: Geocoder | None = None,
        parcels: CadastreParcelResolver | None = None,
        adapters: Sequence[SourceAdapter] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        budget_seconds: float = settings.REQUEST_BUDGET_SECONDS,
    ):
        self.cache = cache if cache is not None else build_cache()
        self.geocoder = geocoder or geocode_client()
        self.parcels = parcels or parcel_resolver()
        self.adapters = list(adapters) if adapters is not None else build_adapters()
        # Tests inject httpx.MockTransport here; production uses the default pool.
        self.transport = transport
        self.budget_seconds = budget_seconds

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=settings.SOURCE_TIMEOUT_SECONDS,
            follow_redirects=True,
            headers={"User-Agent": "house-profile-api/1.0"},
        )

    async def _geocode(self, client: httpx.AsyncClient, address: str) -> ResolvedLocation:
        try:
            return await asyncio.wait_for(self.geocoder.resolve(client, address), timeout=self.budget_seconds)
        except asyncio.TimeoutError:
            raise AddressNotFound("Geocoding timed out")

    async def _fan_out(
        self,
        client: httpx.AsyncClient,
        ctx: FetchContext,
        adapters: Sequence[SourceAdapter],
        deadline: float,
    ) -> tuple[SourceOutcome, dict[str, SourceOutcome]]:
        """
        Run the parcel resolver and `adapters` concurrently and wait for all of
        them (no short-circuit) until `deadline` (event-loop time).
        """
        loop = asyncio.get_running_loop()
        parcel_task = asyncio.create_task(self.parcels.fetch(client, ctx), name="parcel")
        # shield: a market adapter timing out must not cancel the shared lookup
        ctx.parcel = asyncio.shield(parcel_task)
        tasks = {a.section: asyncio.create_task(a.fetch(client, ctx), name=a.section) for a in adapters}
        every = [parcel_task, *tasks.values()]
        try:
            _, pending = await asyncio.wait(every, timeout=max(0.0, deadline - loop.time()))
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.wait(pending)
        finally:
            # caller cancelled or budget spent: nothing outlives the request
            for t in every:
                if not t.done():
                    t.cancel()

        labels = {a.section: a.label for a in adapters}
        labels[self.parcels.section] = self.parcels.label

        def settled(name: str, task: asyncio.Task) -> SourceOutcome:
            if task.cancelled():
                return Failure("timeout", f"{labels[name]} still running when the request budget ran out")
            return task.result()

        return settled("parcel", parcel_task), {name: settled(name, t) for name, t in tasks.items()}

    def _record(self, section: str, outcome: SourceOutcome, label: str, language: str,
                warnings: list[str], provenance: list[ProvenanceRecord]) -> None:
        if outcome.ok:
            SOURCE_OUTCOMES.labels(section=section, status="success").inc()
            p = outcome.provenance
            provenance.append(ProvenanceRecord(section=p.section, source=p.source, timestamp=p.timestamp))
        else:
            SOURCE_OUTCOMES.labels(section=section, status=outcome.cause).inc()
            logger.warning(outcome.message, extra={"section": section, "cause": outcome.cause})
            warnings.append(unavailable_warning(label, language))

    async def _assemble(self, address: str, radius_m: int, language: str, adapters: Sequence[SourceAdapter]):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.budget_seconds
        async with self._client() as client:
            location = await self._geocode(client, address)
            geocoded_at = utcnow()
            ctx = FetchContext(location=location, radius_m=radius_m, language=language)
            parcel, outcomes = await self._fan_out(client, ctx, adapters, deadline)

        warnings: list[str] = []
        provenance = [ProvenanceRecord(section="location", source=self.geocoder.source_url, timestamp=geocoded_at)]
        self._record(self.parcels.section, parcel, self.parcels.label, language, warnings, provenance)

        sections: dict[str, Section] = {}
        for adapter in adapters:
            outcome = outcomes[adapter.section]
            self._record(adapter.section, outcome, adapter.label, language, warnings, provenance)
            model = SECTION_MODELS[adapter.section]
            sections[adapter.section] = outcome.value if outcome.ok else model.empty()
        return location, sections, warnings, provenance

    async def build_profile(self, query: ProfileQuery) -> PropertyProfile:
        started = time.perf_counter()
        language = query.language.value
        location, sections, warnings, provenance = await self._assemble(
            query.address, query.radius_m, language, self.adapters,
        )
        for name, model in SECTION_MODELS.items():
            sections.setdefault(name, model.empty())

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "profile assembled with %d warning(s)", len(warnings),
            extra={"elapsed_ms": elapsed_ms},
        )
        return PropertyProfile(
            query=query,
            location=location_model(location),
            **sections,
            recommendations=compose_recommendations(sections, language),
            warnings=warnings,
            provenance=provenance,
            meta=Meta(generated_at=utcnow(), processing_ms=elapsed_ms),
        )

    async def house_profile(self, query: ProfileQuery, bypass_cache: bool = False) -> tuple[str, str]:
        """
        Serialized profile plus its cache status (HIT, MISS or BYPASS).

        The snapshot is stored after every complete aggregation, bypass
        included, so warnings are cached along with the data.
        """
        language = query.language.value
        if not bypass_cache:
            cached = await self.cache.get(query.address, query.radius_m, language)
            if cached is not None:
                CACHE_LOOKUPS.labels(result="hit").inc()
                logger.debug("profile cache hit", extra={"cache": "HIT"})
                return cached, "HIT"

        status = "BYPASS" if bypass_cache else "MISS"
        CACHE_LOOKUPS.labels(result=status.lower()).inc()
        profile = await self.build_profile(query)
        snapshot = profile.model_dump_json()
        await self.cache.set(query.address, query.radius_m, snapshot, language)
        return snapshot, status

    async def market_summary(self, address: str, language: str = "fr") -> MarketSummaryResponse:
        """Location and market section only (geocoder, parcel resolver and market adapter); never cached."""
        market = [a for a in self.adapters if a.section == "market"]
        location, sections, warnings, provenance = await self._assemble(
            address, settings.RADIUS_DEFAULT_M, language, market,
        )
        return MarketSummaryResponse(
            location=location_model(location),
            market=sections.get("market") or SECTION_MODELS["market"].empty(),
            warnings=warnings,
            provenance=provenance,
        )
