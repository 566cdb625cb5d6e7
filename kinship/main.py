from __future__ import annotations

from fastapi import FastAPI

from .config import EngineSettings
from .engine import KinshipEngine
from .middleware import DatabaseEngineMiddleware
from .routes import router
from .store import RecordStore


def create_app(store: RecordStore | None = None, settings: EngineSettings | None = None) -> FastAPI:
    """Build the HTTP service.

    With *store* given, one engine serves every request (tests, embedded use).
    Without it, each request opens its own PostgreSQL connection from
    ``DATABASE_URL``.
    """

    app = FastAPI(title="Kinship API", version="0.1.0")
    app.state.settings = settings or EngineSettings.from_env()
    app.state.engine = KinshipEngine(store, app.state.settings) if store is not None else None

    if store is None:
        app.add_middleware(DatabaseEngineMiddleware)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"ok": "true"}

    app.include_router(router)
    return app
