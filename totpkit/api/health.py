from __future__ import annotations

import logging

from fastapi import APIRouter, Response
from pymongo.errors import PyMongoError

from totpkit.db.mongo import ping_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(response: Response) -> dict[str, str]:
    """Report whether the user store is reachable.

    Returns:
        dict[str, str]: {"status": "ok"|"fail"}, with status code 503 on failure.
    """
    try:
        ok = await ping_db()
    except PyMongoError as ex:
        logger.warning("Health check ping failed", exc_info=ex)
        ok = False
    if not ok:
        response.status_code = 503
    return {"status": "ok" if ok else "fail"}
