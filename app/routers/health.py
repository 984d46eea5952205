from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.app_state import AppState
from app.routers.utils.dependencies import get_app_state

router = APIRouter(tags=["health"])


@router.get("/health")
def health(state: AppState = Depends(get_app_state)) -> dict[str, object]:
    return {
        "status": "ok",
        "service": state.settings.app_name,
        "analytics_running": state.orchestrator.is_running,
    }
