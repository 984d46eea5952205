from fastapi import Request

from app.core.app_state import AppState


def get_app_state(request: Request) -> AppState:
    """FastAPI dependency returning the pipeline built at startup."""
    return request.app.state.pipeline
