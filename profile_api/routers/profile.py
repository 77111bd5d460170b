import logging

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from ..core.config import settings
from ..core.errors import InternalError, InvalidQuery, ProfileError
from ..core.utils import weak_etag
from ..schemas import Language, MarketSummaryResponse, ProfileQuery, PropertyProfile
from ..services.profile_service import ProfileService

logger = logging.getLogger(__name__)

router = APIRouter()

def service_dep(request: Request) -> ProfileService:
    # Built once by the app factory: the cache must outlive a request.
    return request.app.state.profile_service

def etag_matches(if_none_match: str | None, etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = {c.strip() for c in if_none_match.split(",")}
    return "*" in candidates or etag in candidates

def validate_query(address: str | None, radius: int, language: Language) -> ProfileQuery:
    if address is None or not address.strip():
        raise InvalidQuery("address is required", code="MISSING_ADDRESS")
    if not settings.RADIUS_MIN_M <= radius <= settings.RADIUS_MAX_M:
        raise InvalidQuery(
            f"radius must be between {settings.RADIUS_MIN_M} and {settings.RADIUS_MAX_M} meters",
            code="INVALID_RADIUS",
        )
    return ProfileQuery(address=address.strip(), radius_m=radius, language=language)

@router.get(
    "/house-profile",
    response_model=PropertyProfile,
    responses={304: {"description": "Not modified"}},
)
async def get_house_profile(
    address: str | None = Query(default=None),
    radius: int = Query(default=settings.RADIUS_DEFAULT_M),
    language: Language = Query(default=Language.fr),
    bypass_cache: bool = Query(default=False),
    if_none_match: str | None = Header(default=None, alias="If-None-Match"),
    svc: ProfileService = Depends(service_dep),
):
    query = validate_query(address, radius, language)
    try:
        snapshot, cache_status = await svc.house_profile(query, bypass_cache=bypass_cache)
    except ProfileError:
        raise
    except Exception:
        logger.exception("house profile failed")
        raise InternalError()

    # The snapshot is returned verbatim so a cache hit replays the same bytes.
    etag = weak_etag(snapshot.encode("utf-8"))
    headers = {
        "ETag": etag,
        "X-Cache": cache_status,
        "Cache-Control": f"public, max-age={settings.CACHE_TTL_SECONDS}",
    }
    if etag_matches(if_none_match, etag):
        return Response(status_code=304, headers=headers)
    return Response(content=snapshot, media_type="application/json", headers=headers)

@router.get("/market-summary", response_model=MarketSummaryResponse)
async def get_market_summary(
    address: str | None = Query(default=None),
    language: Language = Query(default=Language.fr),
    svc: ProfileService = Depends(service_dep),
):
    if address is None or not address.strip():
        raise InvalidQuery("address is required", code="MISSING_ADDRESS")
    try:
        return await svc.market_summary(address.strip(), language.value)
    except ProfileError:
        raise
    except Exception:
        logger.exception("market summary failed")
        raise InternalError()
