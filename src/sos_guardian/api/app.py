"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status

from sos_guardian.api.models import OwnerRequest, TriggerRequest
from sos_guardian.app_logging import configure_logging
from sos_guardian.containers import AppContainer
from sos_guardian.domain.errors import PersistenceError
from sos_guardian.domain.sessions import Location, SOSSession


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/sos/trigger")
    async def trigger_sos(body: TriggerRequest, request: Request) -> dict[str, object]:
        """Start an SOS session and background evidence capture."""
        state_container: AppContainer = request.app.state.container
        location = None
        if body.latitude is not None and body.longitude is not None:
            location = Location(
                latitude=body.latitude,
                longitude=body.longitude,
                accuracy=body.accuracy,
            )
        session = await state_container.sos_service.trigger(
            body.owner_id, body.trigger_method, location
        )
        if session is None:
            return {
                "already_active": True,
                "session_id": state_container.session_store.session_id,
            }
        return {"already_active": False, "session": _session_payload(session)}

    @app.post("/sos/deactivate")
    async def deactivate_sos(body: OwnerRequest, request: Request) -> dict[str, str]:
        """End the active SOS session."""
        state_container: AppContainer = request.app.state.container
        try:
            await state_container.sos_service.deactivate(body.owner_id)
        except PersistenceError as exc:
            logger.warning("Deactivation not persisted: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="SOS stopped, but deactivation may not have saved. "
                "Check your connection.",
            ) from exc
        return {"status": "inactive"}

    @app.post("/sos/recover")
    async def recover_sos(body: OwnerRequest, request: Request) -> dict[str, object]:
        """Restore a session left active by a previous run."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.sos_service.recover(body.owner_id)
        return {"session": _session_payload(session) if session else None}

    @app.get("/sos/status")
    async def sos_status(request: Request) -> dict[str, object]:
        """Return SOS, recording, and upload flags."""
        state_container: AppContainer = request.app.state.container
        return state_container.sos_service.status()

    @app.get("/sos/history/{owner_id}")
    async def sos_history(
        owner_id: str, request: Request, limit: int = 10
    ) -> dict[str, object]:
        """Return the owner's recent SOS sessions."""
        state_container: AppContainer = request.app.state.container
        sessions = await state_container.sos_service.history(owner_id, limit)
        return {"sessions": [_session_payload(session) for session in sessions]}

    return app


def _session_payload(session: SOSSession) -> dict[str, object]:
    location = session.location
    return {
        "id": session.id,
        "owner_id": session.owner_id,
        "status": str(session.status),
        "trigger_method": str(session.trigger_method),
        "created_at": session.created_at.isoformat(),
        "deactivated_at": (
            session.deactivated_at.isoformat() if session.deactivated_at else None
        ),
        "duration_seconds": session.duration_seconds,
        "location": (
            {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "maps_link": location.maps_link(),
            }
            if location
            else None
        ),
    }
