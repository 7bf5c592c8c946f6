"""HTTP routes: the cron trigger and a liveness probe."""

from typing import Optional

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from booking_worker.dispatch.runner import Dispatcher
from booking_worker.logging import get_logger
from booking_worker.utils import format_timestamp, utc_now

from .auth import is_authorized

logger = get_logger(__name__, component="api")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}
NO_STORE_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate"}

router = APIRouter()


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_cron_secret(request: Request) -> Optional[str]:
    return request.app.state.cron_secret


@router.options("/run")
def run_preflight() -> PlainTextResponse:
    return PlainTextResponse("ok", headers=CORS_HEADERS)


@router.post("/run")
def run_cycle(request: Request, authorization: Optional[str] = Header(None)) -> JSONResponse:
    """Run one dispatch cycle and return its report.

    Responses:
        200: cycle report (see CycleReport.to_dict)
        401: ``{"error": "Unauthorized"}``; nothing is read or written
        500: ``{"success": false, "error": ..., "timestamp": ...}`` when the
            cycle cannot start (e.g. the store is unreachable)
    """
    secret = get_cron_secret(request)
    if not secret:
        logger.warning(
            "CRON_SECRET not set, trigger endpoint is unauthenticated",
            extra={"event": "api.auth.disabled"},
        )
    elif not is_authorized(authorization, secret):
        logger.warning("Rejected unauthorized trigger", extra={"event": "api.auth.rejected"})
        return JSONResponse({"error": "Unauthorized"}, status_code=401, headers=CORS_HEADERS)

    try:
        report = get_dispatcher(request).run_cycle()
    except Exception as e:
        logger.error(
            f"Dispatch cycle failed: {e}",
            extra={"event": "api.run.failed", "error_type": type(e).__name__},
            exc_info=True,
        )
        return JSONResponse(
            {"success": False, "error": str(e), "timestamp": format_timestamp(utc_now())},
            status_code=500,
            headers={**CORS_HEADERS, **NO_STORE_HEADERS},
        )

    return JSONResponse(report.to_dict(), headers={**CORS_HEADERS, **NO_STORE_HEADERS})


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}
