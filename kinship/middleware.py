"""Request-scoped database engine.

When the app is built without an explicit store, each request gets its own
psycopg connection and a ``KinshipEngine`` over it on ``request.state.engine``.
The connection closes when the response has been produced.
"""

from __future__ import annotations

import logging
import os
import re

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .db import db_conn
from .engine import KinshipEngine
from .store import PostgresStore

log = logging.getLogger(__name__)

_ENV_DB_SCHEMA = "KINSHIP_DB_SCHEMA"

# Paths that never touch the database.
_NO_DB_PATHS: list[re.Pattern[str]] = [
    re.compile(r"^/health$"),
    re.compile(r"^/docs$"),
    re.compile(r"^/openapi\.json$"),
]


def _needs_db(path: str) -> bool:
    return not any(pat.match(path) for pat in _NO_DB_PATHS)


class DatabaseEngineMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if not _needs_db(request.url.path):
            return await call_next(request)

        schema = (os.environ.get(_ENV_DB_SCHEMA) or "").strip() or None
        with db_conn(schema) as conn:
            request.state.engine = KinshipEngine(
                PostgresStore(conn),
                settings=request.app.state.settings,
            )
            log.debug("opened request engine for %s %s", request.method, request.url.path)
            return await call_next(request)
