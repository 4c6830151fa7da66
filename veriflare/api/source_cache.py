"""
Source Cache Read Endpoint
==========================

GET /api/source-cache/{key}

Fetched by the FDC verifier, not by users. Returns the cached JSON exactly as
it was serialized at put() time, with Content-Type application/json.

NO AUTHENTICATION:
Access control is the 128-bit random key plus the 1h retention window.
"""

from fastapi import APIRouter, HTTPException, Request, Response

from veriflare_canonical.constants import SOURCE_CACHE_ROUTE


router = APIRouter(prefix=SOURCE_CACHE_ROUTE, tags=["source-cache"])


@router.get("/{key}")
async def get_cached_source(key: str, request: Request):
    cache = getattr(request.app.state, "source_cache", None)
    body = cache.get_body(key) if cache is not None else None
    if body is None:
        raise HTTPException(status_code=404, detail={"error": "Not found or expired"})

    return Response(content=body, media_type="application/json")
