# app/sync/components/images.py
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Optional, Sequence

import httpx

from app.config import settings

logger = logging.getLogger("uvicorn.error")


def first_image_url(images: Sequence[str] | None) -> Optional[str]:
    for u in images or []:
        if u and str(u).strip():
            return str(u).strip()
    return None


async def _download(url: str, client: httpx.AsyncClient) -> Optional[bytes]:
    r = await client.get(url)
    if r.status_code >= 400:
        logger.debug("[IMG] GET %s -> %s", url, r.status_code)
        return None
    return r.content or None


async def fetch_image_base64(
    url: str | None,
    *,
    client: httpx.AsyncClient | None = None,
    retries: int | None = None,
    delay: float | None = None,
) -> Optional[str]:
    """
    Download an image and return it base64-encoded (no data: prefix), as TPOS
    expects in ProductTemplate.Image. Returns None when every attempt fails;
    a product is still created without an image in that case.
    """
    if not url:
        return None
    retries = settings.IMAGE_FETCH_RETRIES if retries is None else retries
    delay = settings.IMAGE_FETCH_RETRY_DELAY if delay is None else delay

    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(follow_redirects=True, timeout=settings.TPOS_TIMEOUT)
    try:
        for attempt in range(1, max(retries, 1) + 1):
            try:
                logger.info("[IMG] converting image (attempt %d/%d): %s", attempt, retries, url)
                data = await _download(url, client)
                if data:
                    return base64.b64encode(data).decode("ascii")
            except httpx.HTTPError as e:
                logger.warning("[IMG] download failed (attempt %d/%d) for %s: %s", attempt, retries, url, e)
            if attempt < retries:
                await asyncio.sleep(delay)
    finally:
        if own_client:
            await client.aclose()

    logger.warning("[IMG] giving up on %s after %d attempt(s); continuing without image", url, retries)
    return None
