"""
Rule-based recommendations derived from the collected sections.

Pure: reads section models, never performs I/O. Unavailable sections are
ignored, so a profile where every source failed yields no items and a
neutral summary.
"""

from typing import Mapping, Optional

from ..schemas import Recommendation, Recommendations, Section

MAX_ITEMS = 5
POOR_ENERGY_CLASSES = ("D", "E", "F", "G")
POOR_AIR_INDEX = 4   # ATMO scale: 4 "mauvais" and above

# code -> language -> (title, reason); reasons are str.format templates
TEXTS = {
    "energy_renovation": {
        "fr": ("Améliorer l'isolation", "DPE {cls} : performance énergétique à améliorer"),
        "en": ("Improve insulation", "Energy rating {cls}: energy performance should be improved"),
    },
    "radon_check": {
        "fr": ("Vérifier le radon", "Commune exposée au radon : mesure recommandée"),
        "en": ("Check radon levels", "Commune exposed to radon: a measurement is recommended"),
    },
    "flood_insurance": {
        "fr": ("Vérifier l'assurance inondation", "Risque inondation recensé dans la commune"),
        "en": ("Check flood insurance", "Flood risk registered for the commune"),
    },
    "seismic_standards": {
        "fr": ("Vérifier les normes parasismiques", "Commune en zone de sismicité"),
        "en": ("Check seismic building standards", "Commune in a seismic zone"),
    },
    "ground_survey": {
        "fr": ("Faire expertiser le sol", "Mouvements de terrain ou argiles recensés"),
        "en": ("Have the ground surveyed", "Ground movement or clay shrink-swell risk registered"),
    },
    "industrial_risk": {
        "fr": ("Se renseigner sur les sites industriels", "Risque industriel ou technologique recensé"),
        "en": ("Look into nearby industrial sites", "Industrial or technological risk registered"),
    },
    "zoning_check": {
        "fr": ("Consulter le PLU avant travaux", "Zonage PLU identifié : {zones}"),
        "en": ("Read the local plan before any works", "Urban zoning identified: {zones}"),
    },
    "safety_check": {
        "fr": ("Se renseigner sur la sécurité du quartier", "Taux communal supérieur au national : {categories}"),
        "en": ("Look into local safety", "Commune rate above national: {categories}"),
    },
    "air_quality": {
        "fr": ("Tenir compte de la qualité de l'air", "Indice ATMO {index} ({label})"),
        "en": ("Consider air quality", "ATMO index {index} ({label})"),
    },
    "sale_history": {
        "fr": ("Comparer avec la dernière vente du bien", "Vente du {date} à {price_per_m2} €/m²"),
        "en": ("Compare with the property's last sale", "Sold on {date} at {price_per_m2} €/m²"),
    },
}

REASONS = {
    "fr": {
        "energy": "DPE {cls}", "radon": "risque radon", "flood": "risque inondation",
        "seismic": "sismicité", "ground": "mouvements de terrain", "industrial": "risque industriel",
        "safety": "délinquance supérieure à la moyenne", "air": "air de mauvaise qualité",
        "up": "marché en hausse", "down": "marché en baisse",
    },
    "en": {
        "energy": "energy rating {cls}", "radon": "radon risk", "flood": "flood risk",
        "seismic": "seismic activity", "ground": "ground movements", "industrial": "industrial risk",
        "safety": "above-average crime", "air": "poor air quality",
        "up": "rising market", "down": "falling market",
    },
}

SUMMARIES = {
    "fr": ("Points d'attention : {reasons}.", " Vérifications recommandées : {titles}.",
           "Aucune recommandation prioritaire au vu des données disponibles."),
    "en": ("Points of attention: {reasons}.", " Recommended checks: {titles}.",
           "No priority recommendation based on the available data."),
}

def _available(sections: Mapping[str, Section], name: str) -> Optional[Section]:
    section = sections.get(name)
    return section if section is not None and section.available else None

def _item(code: str, language: str, priority: int, related: list[str], **fmt) -> Recommendation:
    title, reason = TEXTS[code][language]
    return Recommendation(code=code, title=title, reason=reason.format(**fmt), priority=priority, related_sections=related)

def compose_recommendations(sections: Mapping[str, Section], language: str = "fr") -> Recommendations:
    """
    Build at most five recommendations, highest priority (1) first, plus a
    one-line summary in `language` ("fr" or "en").
    """
    language = language if language in TEXTS["radon_check"] else "fr"
    words = REASONS[language]
    items: list[Recommendation] = []
    reasons: list[str] = []

    energy = _available(sections, "energy")
    if energy and energy.energy_class and energy.energy_class.upper() in POOR_ENERGY_CLASSES:
        cls = energy.energy_class.upper()
        items.append(_item("energy_renovation", language, 1, ["energy"], cls=cls))
        reasons.append(words["energy"].format(cls=cls))

    risks = _available(sections, "risks")
    if risks:
        if risks.radon:
            items.append(_item("radon_check", language, 1, ["risks"]))
            reasons.append(words["radon"])
        if risks.flood:
            items.append(_item("flood_insurance", language, 1, ["risks"]))
            reasons.append(words["flood"])
        if risks.seismic:
            items.append(_item("seismic_standards", language, 2, ["risks"]))
            reasons.append(words["seismic"])
        if risks.ground_movement or risks.clay:
            items.append(_item("ground_survey", language, 2, ["risks"]))
            reasons.append(words["ground"])
        if risks.industrial:
            items.append(_item("industrial_risk", language, 2, ["risks"]))
            reasons.append(words["industrial"])

    urbanism = _available(sections, "urbanism")
    if urbanism and urbanism.zones:
        codes = ", ".join(sorted({z.code for z in urbanism.zones if z.code})) or "?"
        items.append(_item("zoning_check", language, 2, ["urbanism"], zones=codes))

    safety = _available(sections, "safety")
    if safety:
        high = [i.category for i in safety.indicators if i.level_vs_national == "high"]
        if high:
            items.append(_item("safety_check", language, 2, ["safety"], categories=", ".join(high)))
            reasons.append(words["safety"])

    air = _available(sections, "air_quality")
    if air and air.index is not None and air.index >= POOR_AIR_INDEX:
        items.append(_item("air_quality", language, 3, ["air_quality"], index=air.index, label=air.label or "-"))
        reasons.append(words["air"])

    market = _available(sections, "market")
    if market:
        if market.trend in ("up", "down"):
            reasons.append(words[market.trend])
        if market.last_sale_is_exact and market.last_sale:
            sale = market.last_sale
            items.append(_item("sale_history", language, 3, ["market"],
                               date=sale.date.isoformat(), price_per_m2=sale.price_per_m2))

    items = sorted(items, key=lambda i: i.priority)[:MAX_ITEMS]
    head, checks, neutral = SUMMARIES[language]
    if not reasons and not items:
        return Recommendations(summary=neutral, items=[])
    summary = head.format(reasons=", ".join(reasons)) if reasons else ""
    if items:
        summary += checks.format(titles=", ".join(i.title for i in items))
    return Recommendations(summary=summary.strip(), items=items)
