"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

if TYPE_CHECKING:
    from avatar_studio.containers import AppContainer
    from avatar_studio.domain.sessions import Session

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with background work counters."""
    container: AppContainer = request.app.state.container
    return {"status": "ok", "background_tasks": container.task_runner.pending}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return a summary of every in-memory session."""
    container: AppContainer = request.app.state.container
    sessions = await container.registry.snapshot()
    return {
        "sessions": [
            _session_summary(session_id, session)
            for session_id, session in sorted(sessions.items())
        ]
    }


@router.get("/sessions/{session_id}", dependencies=[Depends(require_admin)])
async def session_detail(session_id: int, request: Request) -> dict[str, object]:
    """Return one session, including its rate gate headroom."""
    container: AppContainer = request.app.state.container
    sessions = await container.registry.snapshot()
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    summary = _session_summary(session_id, session)
    summary["photos"] = [photo.storage_path for photo in session.photos]
    summary["remaining"] = {
        "training": container.training_gate.remaining(session_id),
        "generation": container.generation_gate.remaining(session_id),
        "generation_today": container.generation_daily_gate.remaining(session_id),
    }
    return summary


@router.post("/sessions/{session_id}/reset", dependencies=[Depends(require_admin)])
async def reset_session(session_id: int, request: Request) -> dict[str, object]:
    """Reset a session to defaults; stored photos are left in place."""
    container: AppContainer = request.app.state.container
    previous = await container.registry.reset(session_id)
    return {
        "status": "ok",
        "previous_training_state": previous.training_state.value,
    }


def _session_summary(session_id: int, session: Session) -> dict[str, object]:
    return {
        "session_id": session_id,
        "training_state": session.training_state.value,
        "prompt_state": session.prompt_state.value,
        "photo_count": len(session.photos),
        "model_version": session.model_version,
        "training_job_id": session.training_job_id,
        "last_activity_at": (
            session.last_activity_at.isoformat() if session.last_activity_at else None
        ),
    }
