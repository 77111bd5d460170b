import asyncio
import logging
from typing import Any

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    params: dict | None = None,
    data: dict | None = None,
    headers: dict | None = None,
    retries: int | None = None,
    backoff: float | None = None,
) -> Any:
    """
    Request `url` and decode the JSON body.

    Server errors (5xx) and transport errors are retried with exponential
    backoff; 4xx raise immediately. The last error is re-raised once the
    retries are spent.
    """
    retries = settings.HTTP_RETRIES if retries is None else retries
    backoff = settings.HTTP_BACKOFF_SECONDS if backoff is None else backoff
    attempt = 0
    while True:
        try:
            r = await client.request(method, url, params=params, data=data, headers=headers)
            if r.status_code >= 500 and attempt < retries:
                logger.info("retrying %s after HTTP %s", url, r.status_code)
            else:
                r.raise_for_status()
                return r.json()
        except httpx.TransportError:
            if attempt >= retries:
                raise
        attempt += 1
        await asyncio.sleep(backoff * (2 ** (attempt - 1)))
