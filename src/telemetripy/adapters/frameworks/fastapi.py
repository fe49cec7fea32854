"""FastAPI adapter for telemetry inspection endpoints."""

from fastapi import APIRouter, Response

from telemetripy.core.encoding.ndjson import encode_logs, encode_ndjson, encode_snapshot
from telemetripy.logger import StructuredLogger
from telemetripy.manager import TelemetryManager

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def create_telemetry_router(
    manager: TelemetryManager,
    logger: StructuredLogger,
    prefix: str = "/telemetry",
) -> APIRouter:
    """Create a FastAPI router exposing buffered and stored telemetry.

    Args:
        manager: Manager whose session and fallback storage are served.
        logger: Logger whose audit trail is served.
        prefix: Path prefix for all endpoints.

    Returns:
        APIRouter with /logs, /stored and /session endpoints configured.
    """
    router = APIRouter(prefix=prefix)

    @router.get("/logs")
    async def get_logs() -> Response:
        """Return the local audit trail in NDJSON format."""
        body = encode_logs(logger.get_stored_logs())
        return Response(content=body, media_type=NDJSON_MEDIA_TYPE)

    @router.get("/stored")
    async def get_stored() -> Response:
        """Return sessions held in fallback storage in NDJSON format."""
        body = encode_ndjson(await manager.get_stored_monitoring_data())
        return Response(content=body, media_type=NDJSON_MEDIA_TYPE)

    @router.delete("/stored", status_code=204)
    async def clear_stored() -> Response:
        await manager.clear_stored_monitoring_data()
        return Response(status_code=204)

    @router.get("/session")
    async def get_session() -> Response:
        """Return the current in-memory snapshot."""
        body = encode_snapshot(manager.get_session_data())
        return Response(content=body, media_type="application/json")

    return router
