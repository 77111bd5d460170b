import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Awaitable, Generic, Optional, Protocol, TypeVar, Union

import httpx
from pydantic import ValidationError

from ..core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ----- Data shapes (thin & explicit) -----

@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float

@dataclass(frozen=True)
class ResolvedLocation:
    normalized_address: str
    point: GeoPoint
    citycode: str
    postcode: str
    city: str
    department: Optional[str] = None
    region: Optional[str] = None
    house_number: Optional[str] = None   # as given by the geocoder, e.g. "36" or "36bis"
    street: Optional[str] = None

@dataclass(frozen=True)
class CadastralParcel:
    commune_code: str
    section: str
    prefix: str = "000"   # "com_abs" for merged communes

    @property
    def section_id(self) -> str:
        return f"{self.prefix}{self.section}"

@dataclass(frozen=True)
class TransactionRecord:
    date: date
    price: float
    surface_m2: float
    street_number: Optional[str]
    street_name: Optional[str]
    nature: str                  # normalized: sale | exchange | donation | adjudication | expropriation | other
    source_id: Optional[str] = None
    property_type: Optional[str] = None

    @property
    def price_per_m2(self) -> float:
        return self.price / self.surface_m2 if self.surface_m2 else 0.0

# ----- Outcomes -----

@dataclass(frozen=True)
class Provenance:
    section: str
    source: str
    timestamp: datetime

@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    provenance: Provenance
    ok = True

@dataclass(frozen=True)
class Failure:
    cause: str       # timeout | http_error | bad_payload | not_configured | unavailable | unexpected
    message: str
    ok = False

SourceOutcome = Union[Success[T], Failure]

class SourceError(Exception):
    """Raised inside an adapter for a provider-side condition; becomes a Failure."""
    def __init__(self, cause: str, message: str):
        super().__init__(message)
        self.cause = cause
        self.message = message

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

@dataclass
class FetchContext:
    """Everything an adapter may read. Shared by all adapters of one request."""
    location: ResolvedLocation
    radius_m: int
    language: str = "fr"
    # Settles to SourceOutcome[CadastralParcel]; only the market adapter awaits it.
    parcel: Optional[Awaitable] = field(default=None, repr=False)

# ----- Adapter contract -----

class SourceAdapter:
    """
    Wraps one external provider behind `fetch(client, ctx) -> SourceOutcome`.

    Subclasses implement `_collect`, which may raise anything; `fetch` applies
    the per-call timeout and turns every error into a `Failure` value.
    Cancellation is not caught: it propagates to the coordinator.
    """
    section: str = ""
    label: str = ""          # provider name shown in warnings
    source_url: str = ""

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.SOURCE_TIMEOUT_SECONDS

    async def _collect(self, client: httpx.AsyncClient, ctx: FetchContext):
        raise NotImplementedError

    async def fetch(self, client: httpx.AsyncClient, ctx: FetchContext) -> SourceOutcome:
        try:
            value = await asyncio.wait_for(self._collect(client, ctx), timeout=self.timeout)
        except asyncio.TimeoutError:
            return Failure("timeout", f"{self.label} did not answer within {self.timeout:g}s")
        except httpx.TimeoutException:
            return Failure("timeout", f"{self.label} timed out")
        except SourceError as exc:
            return Failure(exc.cause, exc.message)
        except httpx.HTTPStatusError as exc:
            return Failure("http_error", f"{self.label} answered HTTP {exc.response.status_code}")
        except httpx.HTTPError as exc:
            return Failure("http_error", f"{self.label} unreachable: {exc.__class__.__name__}")
        except (KeyError, TypeError, ValueError, IndexError, AttributeError, ValidationError) as exc:
            return Failure("bad_payload", f"{self.label} returned an unexpected payload: {exc.__class__.__name__}")
        except Exception as exc:
            logger.exception("adapter crashed", extra={"section": self.section})
            return Failure("unexpected", f"{self.label} failed: {exc.__class__.__name__}")
        return Success(value, Provenance(self.section, self.source_url, utcnow()))

# ----- Protocols (interfaces) -----

class Geocoder(Protocol):
    source_url: str

    async def resolve(self, client: httpx.AsyncClient, address: str) -> ResolvedLocation: ...
