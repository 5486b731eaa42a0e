from __future__ import annotations

import contextlib
import logging
from os import environ
from typing import Callable, Optional

import httpx
from dotenv import load_dotenv
from sqlalchemy import Engine
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.routing import Mount

from hekate_platform.api.auth import close_http_client
from hekate_platform.api.middleware import SessionMiddleware
from hekate_platform.db.session import SessionManager, create_engine_from_url
from hekate_platform.logging_config import setup_logging
from hekate_services.calendar.api import routes as calendar_routes
from hekate_services.calendar.sync import GoogleCalendarClient, GoogleConfig

setup_logging()
logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[Engine] = None,
    google_client: Optional[GoogleCalendarClient] = None,
    clock: Optional[Callable] = None,
) -> Starlette:
    """
    Build the ASGI app.

    Serve with ``uvicorn hekate_platform.api.main:create_app --factory``.
    ``engine``, ``google_client`` and ``clock`` replace the environment
    driven defaults.
    """
    load_dotenv()

    if engine is None:
        engine = create_engine_from_url(environ["DATABASE_URL"])
    sessions = SessionManager(engine)

    owned_http_client = None
    if google_client is None:
        config = GoogleConfig.from_environ(environ)
        if config.client_id:
            owned_http_client = httpx.AsyncClient(timeout=config.timeout)
            google_client = GoogleCalendarClient(owned_http_client, config)
        else:
            logger.warning("GOOGLE_CLIENT_ID not set; Google Calendar sync disabled")

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        yield
        if owned_http_client is not None:
            await owned_http_client.aclose()
        await close_http_client()

    app = Starlette(
        routes=[Mount("/api", routes=calendar_routes)],
        middleware=[Middleware(SessionMiddleware, session_manager=sessions)],
        lifespan=lifespan,
    )

    app.state.sessions = sessions
    app.state.google_client = google_client
    app.state.oauth_state_secret = environ.get("OAUTH_STATE_SECRET")
    app.state.clock = clock

    return app
