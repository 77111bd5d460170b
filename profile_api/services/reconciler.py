"""
Transaction reconciliation: separate a property's own sale history from its
cadastral neighborhood.

Sales registries are indexed by cadastral section, not by dwelling, so every
record of a section comes back for any address inside it. Records are first
filtered for plausibility, then classified as exact matches (same house
number and street as the queried address) or neighborhood samples. All
plausible records feed the neighborhood statistics; the "last sale" prefers
the property's own most recent sale and falls back to the most recent
neighborhood sale.

Street comparison is a heuristic (see `core.utils.streets_match`): there is
no shared street identifier between the address database and the registry.
An address without a house number never yields an exact match.
"""

from dataclasses import dataclass, field
from datetime import date
from statistics import mean, median
from typing import Iterable, Optional

from ..core.config import settings
from ..core.utils import parse_house_number, round_half_up, street_token, streets_match
from ..data.base import ResolvedLocation, TransactionRecord

SALE = "sale"

@dataclass(frozen=True)
class PlausibilityBounds:
    min_surface_m2: float = 9.0
    min_price_per_m2: float = 500.0
    max_price_per_m2: float = 30000.0

    @classmethod
    def from_settings(cls) -> "PlausibilityBounds":
        return cls(
            min_surface_m2=settings.MIN_SURFACE_M2,
            min_price_per_m2=settings.MIN_PRICE_PER_M2,
            max_price_per_m2=settings.MAX_PRICE_PER_M2,
        )

@dataclass(frozen=True)
class AddressTarget:
    """The queried address reduced to what can be compared with registry rows."""
    house_number: Optional[int]
    street_token: str

    @classmethod
    def from_location(cls, location: ResolvedLocation) -> "AddressTarget":
        return cls(parse_house_number(location.house_number), street_token(location.street))

@dataclass
class Reconciliation:
    sample: list[TransactionRecord] = field(default_factory=list)
    exact_matches: list[TransactionRecord] = field(default_factory=list)
    street_matches: list[TransactionRecord] = field(default_factory=list)
    average_price_per_m2: int = 0
    median_price_per_m2: Optional[int] = None
    median_price_per_m2_1y: Optional[int] = None
    volume_3y: int = 0
    trend: Optional[str] = None
    last_sale: Optional[TransactionRecord] = None
    last_sale_is_exact: bool = False

    @property
    def count(self) -> int:
        return len(self.sample)

def is_plausible(record: TransactionRecord, bounds: PlausibilityBounds) -> bool:
    if record.nature != SALE:
        return False
    if record.price <= 0 or record.surface_m2 <= bounds.min_surface_m2:
        return False
    return bounds.min_price_per_m2 <= record.price_per_m2 <= bounds.max_price_per_m2

def filter_plausible(records: Iterable[TransactionRecord], bounds: PlausibilityBounds) -> list[TransactionRecord]:
    """Keeps input order. Idempotent: filtering twice gives the same list."""
    return [r for r in records if is_plausible(r, bounds)]

def is_exact_match(record: TransactionRecord, target: AddressTarget) -> bool:
    if target.house_number is None:
        return False
    if parse_house_number(record.street_number) != target.house_number:
        return False
    return streets_match(street_token(record.street_name), target.street_token)

def is_street_match(record: TransactionRecord, target: AddressTarget) -> bool:
    if not target.street_token:
        return False
    return streets_match(street_token(record.street_name), target.street_token)

def by_date_desc(records: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    return sorted(records, key=lambda r: r.date, reverse=True)

def years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:   # 29 February
        return day.replace(year=day.year - years, day=28)

def within_years(records: Iterable[TransactionRecord], today: date, years: int) -> list[TransactionRecord]:
    since = years_before(today, years)
    return [r for r in records if r.date >= since]

def price_trend(records: list[TransactionRecord], threshold: float = 0.05) -> Optional[str]:
    """Median price/m2 of the newer half of sales against the older half."""
    if len(records) < 4:
        return None
    ordered = sorted(records, key=lambda r: r.date)
    half = len(ordered) // 2
    older = median(r.price_per_m2 for r in ordered[:half])
    newer = median(r.price_per_m2 for r in ordered[half:])
    if newer > older * (1 + threshold):
        return "up"
    if newer < older * (1 - threshold):
        return "down"
    return "stable"

def reconcile(
    records: Iterable[TransactionRecord],
    target: AddressTarget,
    bounds: PlausibilityBounds | None = None,
    today: date | None = None,
) -> Reconciliation:
    bounds = bounds or PlausibilityBounds.from_settings()
    today = today or date.today()
    sample = by_date_desc(filter_plausible(records, bounds))
    if not sample:
        return Reconciliation()

    exact = [r for r in sample if is_exact_match(r, target)]
    # Without a house number, same-street sales are history hints only.
    street = [r for r in sample if is_street_match(r, target)] if target.house_number is None else []

    prices = [r.price_per_m2 for r in sample]
    last_year = [r.price_per_m2 for r in within_years(sample, today, 1)]
    last_sale = exact[0] if exact else sample[0]
    return Reconciliation(
        sample=sample,
        exact_matches=exact,
        street_matches=street,
        average_price_per_m2=round_half_up(mean(prices)),
        median_price_per_m2=round_half_up(median(prices)),
        median_price_per_m2_1y=round_half_up(median(last_year)) if last_year else None,
        volume_3y=len(within_years(sample, today, 3)),
        trend=price_trend(sample),
        last_sale=last_sale,
        last_sale_is_exact=bool(exact),
    )
