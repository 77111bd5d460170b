"""
Tests for the source adapters: payload mapping and the failure taxonomy
"""
import asyncio
from datetime import date

import httpx
import pytest

from profile_api.data.amenities_client import OverpassAdapter
from profile_api.data.atmo_client import AtmoAdapter
from profile_api.data.base import CadastralParcel, Failure, Provenance, SourceAdapter, Success, utcnow
from profile_api.data.cadastre_client import CadastreParcelResolver
from profile_api.data.dvf_client import DvfMarketAdapter, normalize_nature, record_from_mutation
from profile_api.data.energy_client import AdemeDpeAdapter
from profile_api.data.http import fetch_json
from profile_api.data.ownership_client import PappersOwnershipAdapter
from profile_api.data.risks_client import GeorisquesAdapter
from profile_api.data.safety_client import SafetyAdapter, level_vs_national
from profile_api.data.schools_client import SchoolsAdapter
from profile_api.data.urbanism_client import GpuZoningAdapter
from profile_api.schemas import MarketSection, RisksSection


def run(adapter: SourceAdapter, providers, ctx):
    async def go():
        async with httpx.AsyncClient(transport=providers.transport()) as client:
            return await adapter.fetch(client, ctx)
    return asyncio.run(go())


def with_parcel(ctx, section="AB"):
    async def parcel():
        return Success(CadastralParcel("75101", section), Provenance("parcel", "test", utcnow()))
    ctx.parcel = parcel()
    return ctx


class TestFailureTaxonomy:

    class Boom(SourceAdapter):
        section = "risks"
        label = "Boom"

        def __init__(self, exc, **kw):
            super().__init__(**kw)
            self.exc = exc

        async def _collect(self, client, ctx):
            raise self.exc

    @pytest.mark.parametrize("exc,cause", [
        (KeyError("features"), "bad_payload"),
        (TypeError("NoneType"), "bad_payload"),
        (ValueError("not json"), "bad_payload"),
        (httpx.ConnectError("refused"), "http_error"),
        (httpx.ReadTimeout("slow"), "timeout"),
        (RuntimeError("bug"), "unexpected"),
    ])
    def test_errors_become_failures(self, providers, ctx, exc, cause):
        outcome = run(self.Boom(exc), providers, ctx)
        assert isinstance(outcome, Failure)
        assert outcome.cause == cause
        assert not outcome.ok

    def test_http_status(self, providers, ctx):
        providers.set("georisques.gouv.fr", (404, {}))
        outcome = run(GeorisquesAdapter(), providers, ctx)
        assert outcome.cause == "http_error"
        assert "404" in outcome.message

    def test_slow_provider_times_out(self, providers, ctx):
        async def slow(request):
            await asyncio.sleep(2)
            return httpx.Response(200, json={})
        providers.set("api.atmo-france.org", slow)
        outcome = run(AtmoAdapter(timeout=0.05), providers, ctx)
        assert outcome.cause == "timeout"

    def test_success_carries_provenance(self, providers, ctx):
        outcome = run(GeorisquesAdapter(), providers, ctx)
        assert outcome.ok
        assert outcome.provenance.section == "risks"
        assert outcome.provenance.source == "https://georisques.gouv.fr/api/v1/gaspar/risques"
        assert outcome.provenance.timestamp.tzinfo is not None


class TestFetchJson:

    def test_server_errors_are_retried(self, providers):
        answers = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
        providers.set("example.test", lambda request: next(answers))

        async def go():
            async with httpx.AsyncClient(transport=providers.transport()) as client:
                return await fetch_json(client, "https://example.test/x", retries=1, backoff=0)

        assert asyncio.run(go()) == {"ok": True}
        assert providers.hits("example.test") == 2

    def test_client_errors_are_not_retried(self, providers):
        providers.set("example.test", (404, {}))

        async def go():
            async with httpx.AsyncClient(transport=providers.transport()) as client:
                return await fetch_json(client, "https://example.test/x", retries=3, backoff=0)

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(go())
        assert providers.hits("example.test") == 1


class TestParcel:

    def test_section_id(self, providers, ctx):
        outcome = run(CadastreParcelResolver(), providers, ctx)
        assert outcome.value.section_id == "000AB"
        assert outcome.value.commune_code == "75101"

    def test_single_letter_section_is_padded(self, providers, ctx):
        providers.set("apicarto.ign.fr/api/cadastre", {"features": [{"properties": {"section": "B"}}]})
        outcome = run(CadastreParcelResolver(), providers, ctx)
        assert outcome.value.section_id == "0000B"

    def test_no_section_is_unavailable(self, providers, ctx):
        providers.set("apicarto.ign.fr/api/cadastre", {"features": []})
        outcome = run(CadastreParcelResolver(), providers, ctx)
        assert outcome.cause == "unavailable"


class TestMarket:

    def test_parcel_mode_reconciles_the_section(self, providers, ctx):
        outcome = run(DvfMarketAdapter(), providers, with_parcel(ctx))
        market: MarketSection = outcome.value
        assert market.mode == "parcel"
        assert market.parcel_section == "000AB"
        assert market.count == 2
        assert market.average_price_per_m2 == 5000
        assert market.last_sale.date == date(2022, 6, 1)
        assert market.last_sale.address == "12 RUE EXEMPLE"
        assert market.last_sale.property_type == "apartment"
        assert market.last_sale_is_exact
        assert [s.source_id for s in market.sample] == ["2022-1", "2021-1"]

    def test_radius_fallback_without_parcel(self, providers, ctx):
        outcome = run(DvfMarketAdapter(), providers, ctx)
        market = outcome.value
        assert market.mode == "radius"
        assert market.parcel_section is None
        assert market.count == 1
        # same number and street, but a radius search never claims the property's own sale
        assert not market.last_sale_is_exact
        assert market.exact_matches == []
        assert providers.hits("app.dvf.etalab.gouv.fr") == 0
        assert market.search_radius_m == 800

    def test_radius_fallback_after_parcel_failure(self, providers, ctx):
        async def failed():
            return Failure("unavailable", "no section")
        ctx.parcel = failed()
        outcome = run(DvfMarketAdapter(), providers, ctx)
        assert outcome.value.mode == "radius"

    def test_empty_section_is_available_but_empty(self, providers, ctx):
        providers.set("app.dvf.etalab.gouv.fr", {"mutations": []})
        market = run(DvfMarketAdapter(), providers, with_parcel(ctx)).value
        assert market.available
        assert market.count == 0
        assert market.last_sale is None

    @pytest.mark.parametrize("raw,code", [
        ("Vente", "sale"),
        ("Vente en l'état futur d'achèvement", "sale"),
        ("Vente terrain à bâtir", "sale"),
        ("Echange", "exchange"),
        ("Échange", "exchange"),
        ("Adjudication", "adjudication"),
        ("Expropriation", "expropriation"),
        ("", "other"),
        (None, "other"),
    ])
    def test_nature(self, raw, code):
        assert normalize_nature(raw) == code

    def test_rows_without_date_are_dropped(self):
        assert record_from_mutation({"valeur_fonciere": "1"}) is None
        assert record_from_mutation({"date_mutation": "someday"}) is None


class TestRadiusSearch:

    TODAY = date(2023, 1, 15)

    @staticmethod
    def rows(n, day="2022-06-01"):
        return [
            {"id_mutation": f"r-{i}", "date_mutation": day, "nature_mutation": "Vente",
             "valeur_fonciere": 60 * (4000 + 100 * i), "surface_reelle_bati": 60}
            for i in range(n)
        ]

    def by_distance(self, answers):
        def answer(request):
            status, body = answers[int(request.url.params["distance"])]
            return httpx.Response(status, json=body)
        return answer

    def adapter(self, **kw):
        return DvfMarketAdapter(today=lambda: self.TODAY, **kw)

    def distances(self, providers):
        return [int(r.url.params["distance"]) for r in providers.calls if r.url.host == "api.cquest.org"]

    def test_widens_until_enough_recent_sales(self, providers, ctx):
        providers.set("api.cquest.org/dvf", self.by_distance({
            800: (200, self.rows(3)),
            1200: (200, {"resultats": self.rows(12)}),
            2000: (200, self.rows(40)),
        }))

        market = run(self.adapter(), providers, ctx).value

        assert self.distances(providers) == [800, 1200]
        assert market.search_radius_m == 1200
        assert market.count == 12
        assert market.volume_3y == 12
        assert market.median_price_per_m2_1y == 4550

    def test_keeps_the_richest_answer_when_none_is_enough(self, providers, ctx):
        old = "2021-06-01"   # inside three years, outside the last one
        providers.set("api.cquest.org/dvf", self.by_distance({
            800: (200, self.rows(2, old)),
            1200: (200, self.rows(5, old)),
            2000: (200, self.rows(4, old)),
        }))

        market = run(self.adapter(), providers, ctx).value

        assert self.distances(providers) == [800, 1200, 2000]
        assert market.search_radius_m == 1200
        assert market.volume_3y == 5
        assert market.median_price_per_m2_1y is None

    def test_three_year_volume_stops_the_first_step(self, providers, ctx):
        providers.set("api.cquest.org/dvf", self.by_distance({
            800: (200, self.rows(24, "2021-06-01")),
            1200: (200, self.rows(40)),
            2000: (200, self.rows(40)),
        }))
        market = run(self.adapter(), providers, ctx).value
        assert self.distances(providers) == [800]
        assert market.volume_3y == 24

    def test_failed_step_is_skipped(self, providers, ctx):
        providers.set("api.cquest.org/dvf", self.by_distance({
            800: (404, {}),
            1200: (200, self.rows(12)),
            2000: (200, []),
        }))
        market = run(self.adapter(), providers, ctx).value
        assert market.search_radius_m == 1200
        assert market.count == 12

    def test_every_step_failing_is_a_failure(self, providers, ctx):
        providers.set("api.cquest.org/dvf", (404, {}))
        outcome = run(self.adapter(radius_steps=[800, 1200]), providers, ctx)
        assert isinstance(outcome, Failure)
        assert outcome.cause == "http_error"
        assert self.distances(providers) == [800, 1200]

    def test_timeout_starts_after_the_parcel(self, providers, ctx):
        async def slow_parcel():
            await asyncio.sleep(0.3)
            return Failure("timeout", "no answer")
        ctx.parcel = slow_parcel()

        outcome = run(self.adapter(timeout=0.2), providers, ctx)

        assert outcome.ok
        assert outcome.value.mode == "radius"


class TestOtherSources:

    def test_risks(self, providers, ctx):
        risks: RisksSection = run(GeorisquesAdapter(), providers, ctx).value
        assert [r.label for r in risks.risks] == ["Inondation", "Radon"]
        assert risks.flood and risks.radon
        assert not (risks.seismic or risks.industrial or risks.clay or risks.ground_movement)

    def test_risks_flat_rows(self, providers, ctx):
        providers.set("georisques.gouv.fr", {"data": [{"num_risque": "13", "libelle_risque_long": "Séisme"}]})
        risks = run(GeorisquesAdapter(), providers, ctx).value
        assert risks.seismic
        assert risks.risks[0].code == "13"

    def test_energy(self, providers, ctx):
        energy = run(AdemeDpeAdapter(), providers, ctx).value
        assert energy.found
        assert energy.energy_class == "E"
        assert energy.ghg_class == "C"
        assert energy.surface_m2 == 70.0
        request = providers.calls[-1]
        assert request.url.params["q"] == "12 Rue Exemple 75001 Paris"

    def test_energy_not_found_is_not_a_failure(self, providers, ctx):
        providers.set("data.ademe.fr", {"results": []})
        outcome = run(AdemeDpeAdapter(), providers, ctx)
        assert outcome.ok
        assert not outcome.value.found
        assert outcome.value.available

    def test_schools_sorted_by_distance(self, providers, ctx):
        education = run(SchoolsAdapter(), providers, ctx).value
        assert [s.name for s in education.schools] == ["École élémentaire Exemple", "Collège Exemple"]
        assert education.schools[0].distance_m < education.schools[1].distance_m
        assert education.schools[0].public_private == "privé"
        params = providers.calls[-1].url.params
        assert params["geofilter.distance"] == "48.8606,2.3412,1500"

    def test_air_quality(self, providers, ctx):
        air = run(AtmoAdapter(), providers, ctx).value
        assert (air.index, air.label) == (2, "Moyen")

    def test_amenities(self, providers, ctx):
        amenities = run(OverpassAdapter(), providers, ctx).value
        assert [a.name for a in amenities.supermarkets] == ["Near Market", "Far Market"]
        assert amenities.transit[0].kind == "station"
        assert len(amenities.parks) == 1
        assert providers.calls[-1].method == "POST"

    def test_amenities_keep_the_nearest_five(self, providers, ctx):
        far_first = [
            {"lat": 48.8606 + 0.001 * i, "lon": 2.3412, "tags": {"shop": "supermarket", "name": f"m{i}"}}
            for i in range(8, 0, -1)
        ]
        providers.set("overpass-api.de", {"elements": far_first})
        amenities = run(OverpassAdapter(), providers, ctx).value
        assert [a.name for a in amenities.supermarkets] == ["m1", "m2", "m3", "m4", "m5"]

    def test_safety(self, providers, ctx):
        safety = run(SafetyAdapter(), providers, ctx).value
        burglary, vehicles = safety.indicators
        assert burglary.level_vs_national == "high"
        assert vehicles.level_vs_national == "low"
        assert [p.year for p in burglary.series] == [2022, 2023]
        assert (safety.period_from, safety.period_to) == ("2022", "2023")
        assert safety.citycode == "75101"
        assert safety.notes

    @pytest.mark.parametrize("local,national,level", [
        (29.9, 40, "low"), (30, 40, "medium"), (50, 40, "medium"), (50.1, 40, "high"),
        (None, 40, None), (10, 0, None),
    ])
    def test_level_vs_national(self, local, national, level):
        assert level_vs_national(local, national) == level

    def test_ownership(self, providers, ctx):
        ownership = run(PappersOwnershipAdapter(api_key="k"), providers, ctx).value
        assert ownership.parcel_ref == "000AB0042"
        assert ownership.owners[0].name == "SCI EXEMPLE"
        assert ownership.coownerships[0].manager == "Cabinet Syndic"
        assert ownership.coownerships[0].total_lots == 24
        assert providers.calls[-1].headers["api-key"] == "k"

    def test_ownership_without_key(self, providers, ctx):
        outcome = run(PappersOwnershipAdapter(api_key=None), providers, ctx)
        assert outcome.cause == "not_configured"
        assert providers.hits("api-immobilier.pappers.fr") == 0

    def test_urbanism(self, providers, ctx):
        urbanism = run(GpuZoningAdapter(), providers, ctx).value
        assert urbanism.zones[0].code == "UG"
        assert urbanism.zones[0].label == "Zone urbaine générale"
