from __future__ import annotations

import time

from fastapi import FastAPI, Request

from catalog_admin.core.logging import get_logger

logger = get_logger("catalog_admin.requests")


def install_request_logging(app: FastAPI) -> None:
    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
        )
        return response
