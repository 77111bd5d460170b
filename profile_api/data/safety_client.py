from datetime import date

import httpx

from .base import FetchContext, SourceAdapter
from .http import fetch_json
from ..core.config import settings
from ..schemas import SafetyIndicator, SafetySection, SeriesPoint

NOTES = {
    "fr": [
        "Données au niveau communal uniquement. Ne pas attribuer à une adresse précise.",
        "Comparaison avec le taux national à titre indicatif.",
    ],
    "en": [
        "Commune-level data only. Not attributable to a specific address.",
        "Comparison with the national rate is indicative.",
    ],
}

def level_vs_national(local: float | None, national: float | None) -> str | None:
    """low below 75% of the national rate, high above 125%, medium in between."""
    if local is None or not national:
        return None
    if local < national * 0.75:
        return "low"
    if local > national * 1.25:
        return "high"
    return "medium"

def _series(raw) -> list[SeriesPoint]:
    if isinstance(raw, dict):
        raw = [{"year": k, "value": v} for k, v in raw.items()]
    out = [
        SeriesPoint(year=int(p.get("year", p.get("annee"))), value=float(p.get("value", p.get("valeur"))))
        for p in raw or []
    ]
    return sorted(out, key=lambda p: p.year)

def indicator_from_row(row: dict) -> SafetyIndicator:
    local = row.get("taux_local")
    national = row.get("taux_national")
    return SafetyIndicator(
        category=row["categorie"],
        total_10y=row.get("total_10ans"),
        rate_local_per_10k=local,
        rate_national_per_10k=national,
        level_vs_national=level_vs_national(local, national),
        series=_series(row.get("series")),
    )

class SafetyAdapter(SourceAdapter):
    """
    Recorded crime indicators for the commune (SSMSI, published on data.gouv),
    compared with the national rate. Never attributed to the address itself.
    """
    section = "safety"
    label = "SSMSI"

    def __init__(self, base_url: str = settings.SAFETY_BASE_URL, timeout: float | None = None):
        super().__init__(timeout)
        self.base_url = base_url.rstrip("/")
        self.source_url = f"{self.base_url}/securite-commune"

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext) -> SafetySection:
        citycode = ctx.location.citycode
        j = await fetch_json(client, f"{self.source_url}-{citycode}")
        indicators = [indicator_from_row(r) for r in j.get("indicators") or []]
        years = [p.year for i in indicators for p in i.series]
        return SafetySection(
            citycode=citycode,
            period_from=str(min(years)) if years else str(date.today().year - 10),
            period_to=str(max(years)) if years else str(date.today().year),
            indicators=indicators,
            notes=NOTES.get(ctx.language, NOTES["fr"]),
        )
