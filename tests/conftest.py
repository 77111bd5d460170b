"""Pytest configuration and fixtures.

Provider HTTP is faked with httpx.MockTransport routed on host + path; no
test touches the network.
"""

import copy

import httpx
import pytest

from profile_api.core.cache import ProfileCache
from profile_api.data.amenities_client import OverpassAdapter
from profile_api.data.atmo_client import AtmoAdapter
from profile_api.data.base import FetchContext, GeoPoint, ResolvedLocation
from profile_api.data.cadastre_client import CadastreParcelResolver
from profile_api.data.dvf_client import DvfMarketAdapter
from profile_api.data.energy_client import AdemeDpeAdapter
from profile_api.data.geocode_client import BanGeocoder
from profile_api.data.ownership_client import PappersOwnershipAdapter
from profile_api.data.risks_client import GeorisquesAdapter
from profile_api.data.safety_client import SafetyAdapter
from profile_api.data.schools_client import SchoolsAdapter
from profile_api.data.urbanism_client import GpuZoningAdapter
from profile_api.services.profile_service import ProfileService

ADDRESS = "12 Rue Exemple, 75001 Paris"

BAN = {"features": [{
    "type": "Feature",
    "geometry": {"type": "Point", "coordinates": [2.3412, 48.8606]},
    "properties": {
        "label": "12 Rue Exemple 75001 Paris",
        "citycode": "75101",
        "postcode": "75001",
        "city": "Paris",
        "context": "75, Paris, Île-de-France",
        "housenumber": "12",
        "street": "Rue Exemple",
        "type": "housenumber",
    },
}]}

CADASTRE = {"features": [{"properties": {"section": "AB", "code_insee": "75101", "com_abs": "000"}}]}

MUTATIONS = {"mutations": [
    {"id_mutation": "2021-1", "date_mutation": "2021-03-15", "nature_mutation": "Vente",
     "valeur_fonciere": "300000.00", "surface_reelle_bati": "60", "adresse_numero": "14",
     "adresse_nom_voie": "RUE EXEMPLE", "type_local": "Appartement"},
    {"id_mutation": "2022-1", "date_mutation": "2022-06-01", "nature_mutation": "Vente",
     "valeur_fonciere": "350000.00", "surface_reelle_bati": "70", "adresse_numero": "12",
     "adresse_nom_voie": "RUE EXEMPLE", "type_local": "Appartement"},
    # filtered out: not a sale, then no price
    {"id_mutation": "2020-1", "date_mutation": "2020-01-10", "nature_mutation": "Echange",
     "valeur_fonciere": "200000", "surface_reelle_bati": "50", "adresse_numero": "12",
     "adresse_nom_voie": "RUE EXEMPLE"},
    {"id_mutation": "2023-1", "date_mutation": "2023-02-02", "nature_mutation": "Vente",
     "valeur_fonciere": None, "surface_reelle_bati": "45", "adresse_numero": "8",
     "adresse_nom_voie": "RUE EXEMPLE"},
]}

RADIUS_SALES = {"resultats": [
    {"id_mutation": "r-1", "date_mutation": "2022-09-01", "nature_mutation": "Vente",
     "valeur_fonciere": 480000, "surface_reelle_bati": 80, "numero_voie": 12, "voie": "RUE EXEMPLE"},
]}

RISKS = {"data": [{"code_insee": "75101", "risques_detail": [
    {"num_risque": "11", "libelle_risque_long": "Inondation"},
    {"num_risque": "17", "libelle_risque_long": "Radon"},
]}]}

DPE = {"total": 1, "results": [{
    "numero_dpe": "2375E0123456X", "etiquette_dpe": "E", "etiquette_ges": "C",
    "date_etablissement_dpe": "2023-04-12", "surface_habitable_logement": 70,
    "type_batiment": "appartement",
}]}

SCHOOLS = {"records": [
    {"fields": {"appellation_officielle": "Collège Exemple", "type_etablissement": "Collège",
                "statut_public_prive": "Public", "adresse_1": "20 rue du Louvre",
                "code_postal": "75001", "nom_commune": "Paris"},
     "geometry": {"type": "Point", "coordinates": [2.3500, 48.8650]}},
    {"fields": {"appellation_officielle": "École élémentaire Exemple", "type_etablissement": "Ecole",
                "statut_public_prive": "Privé", "adresse_1": "3 rue Exemple",
                "code_postal": "75001", "nom_commune": "Paris"},
     "geometry": {"type": "Point", "coordinates": [2.3415, 48.8608]}},
]}

ATMO = {"indice": 2, "qualificatif": "Moyen", "date_ech": "2024-05-02"}

OVERPASS = {"elements": [
    {"type": "node", "lat": 48.8620, "lon": 2.3430, "tags": {"shop": "supermarket", "name": "Far Market"}},
    {"type": "node", "lat": 48.8607, "lon": 2.3413, "tags": {"shop": "supermarket", "name": "Near Market"}},
    {"type": "node", "lat": 48.8610, "lon": 2.3420, "tags": {"railway": "station", "name": "Louvre"}},
    {"type": "node", "lat": 48.8630, "lon": 2.3380, "tags": {"leisure": "park", "name": "Jardin"}},
    {"type": "node", "lat": 48.8600, "lon": 2.3400, "tags": {"amenity": "bench"}},
]}

SAFETY = {"indicators": [
    {"categorie": "Cambriolages", "total_10ans": 1200, "taux_local": 60.0, "taux_national": 40.0,
     "series": [{"annee": 2023, "valeur": 130}, {"annee": 2022, "valeur": 120}]},
    {"categorie": "Vols de véhicules", "total_10ans": 300, "taux_local": 20.0, "taux_national": 40.0,
     "series": [{"annee": 2022, "valeur": 30}, {"annee": 2023, "valeur": 28}]},
]}

URBANISM = {"features": [{"properties": {
    "libelle": "UG", "libelong": "Zone urbaine générale",
    "urlfic": "https://www.geoportail-urbanisme.gouv.fr/document/plu-75056",
}}]}

PAPPERS = {"resultats": [{
    "prefixe": "000", "section": "AB", "numero_plan": "0042",
    "proprietaires": [{"denomination": "SCI EXEMPLE", "siren": "123456789", "forme_juridique": "SCI"}],
    "coproprietes": [{"nom": "Résidence Exemple", "numero_immatriculation": "AA1234567",
                      "nombre_total_lots": 24, "nombre_lots_habitation": 18,
                      "syndic": {"denomination": "Cabinet Syndic"}}],
}]}

# host + path prefix -> answer; matched in order
DEFAULT_ROUTES = {
    "api-adresse.data.gouv.fr/search": BAN,
    "apicarto.ign.fr/api/cadastre/division": CADASTRE,
    "app.dvf.etalab.gouv.fr/api/mutations3/75101/000AB": MUTATIONS,
    "api.cquest.org/dvf": RADIUS_SALES,
    "georisques.gouv.fr/api/v1/gaspar/risques": RISKS,
    "data.ademe.fr/data-fair/api/v1/datasets/dpe-v2-logements-existants/lines": DPE,
    "data.education.gouv.fr/api/records/1.0/search": SCHOOLS,
    "api.atmo-france.org/api/indices/75101": ATMO,
    "overpass-api.de/api/interpreter": OVERPASS,
    "www.data.gouv.fr/api/1/datasets/securite-commune-75101": SAFETY,
    "apicarto.ign.fr/api/gpu/zone-urba": URBANISM,
    "api-immobilier.pappers.fr/v1/parcelles": PAPPERS,
}

SECTIONS = ["risks", "energy", "market", "education", "air_quality", "amenities", "safety", "ownership", "urbanism"]

class FakeProviders:
    """
    Callable for httpx.MockTransport. An answer is a JSON body, a
    (status, body) tuple, or a (possibly async) function of the request.
    """
    def __init__(self, routes: dict | None = None):
        self.routes = copy.deepcopy(DEFAULT_ROUTES)
        self.calls: list[httpx.Request] = []
        for prefix, answer in (routes or {}).items():
            self.set(prefix, answer)

    def set(self, prefix: str, answer):
        """Override: takes precedence over every existing route."""
        others = {k: v for k, v in self.routes.items() if k != prefix}
        self.routes = {prefix: answer, **others}

    def hits(self, prefix: str) -> int:
        return sum(1 for r in self.calls if (r.url.host + r.url.path).startswith(prefix))

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = request.url.host + request.url.path
        for prefix, answer in self.routes.items():
            if not key.startswith(prefix):
                continue
            if callable(answer):
                result = answer(request)
                if hasattr(result, "__await__"):
                    result = await result
                return result
            status, body = answer if isinstance(answer, tuple) else (200, answer)
            return httpx.Response(status, json=body)
        return httpx.Response(404, json={"message": "no route"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

def make_adapters(timeout: float = 2.0, pappers_key: str | None = "test-key"):
    return [
        GeorisquesAdapter(timeout=timeout),
        AdemeDpeAdapter(timeout=timeout),
        DvfMarketAdapter(timeout=timeout),
        SchoolsAdapter(timeout=timeout),
        AtmoAdapter(timeout=timeout),
        OverpassAdapter(timeout=timeout),
        SafetyAdapter(timeout=timeout),
        PappersOwnershipAdapter(api_key=pappers_key, timeout=timeout),
        GpuZoningAdapter(timeout=timeout),
    ]

@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Retries stay on, waits go away."""
    from profile_api.core.config import settings
    monkeypatch.setattr(settings, "HTTP_BACKOFF_SECONDS", 0.0)

@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

@pytest.fixture
def cache(clock) -> ProfileCache:
    return ProfileCache(ttl_seconds=900, maxsize=64, clock=clock)

@pytest.fixture
def make_service(providers, cache):
    """Factory: ProfileService wired to the fake providers."""
    def _make(adapter_timeout: float = 2.0, budget_seconds: float = 5.0, pappers_key: str | None = "test-key", adapters=None):
        return ProfileService(
            cache=cache,
            geocoder=BanGeocoder(),
            parcels=CadastreParcelResolver(timeout=adapter_timeout),
            adapters=adapters if adapters is not None else make_adapters(adapter_timeout, pappers_key),
            transport=providers.transport(),
            budget_seconds=budget_seconds,
        )
    return _make

@pytest.fixture
def location() -> ResolvedLocation:
    return ResolvedLocation(
        normalized_address="12 Rue Exemple 75001 Paris",
        point=GeoPoint(lat=48.8606, lon=2.3412),
        citycode="75101",
        postcode="75001",
        city="Paris",
        department="75",
        region="Île-de-France",
        house_number="12",
        street="Rue Exemple",
    )

@pytest.fixture
def ctx(location) -> FetchContext:
    return FetchContext(location=location, radius_m=1500, language="fr")
