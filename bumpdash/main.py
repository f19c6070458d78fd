from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from . import __version__
from .api import auth_router, dashboard_router, pages_router
from .api.deps import GuildDirectory, LoginRequired
from .config import Settings, settings as default_settings
from .discord_rest import DiscordRest
from .service import BumpService
from .sessions import SessionStore
from .store import ConfigStore

logger = logging.getLogger(__name__)


def create_app(
    service: BumpService,
    *,
    guilds: Optional[GuildDirectory] = None,
    settings: Optional[Settings] = None,
    sessions: Optional[SessionStore] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the dashboard app around an existing BumpService.

    `guilds` is the bot (or anything exposing guild_ids / list_text_channels).
    `http` is the client used for the OAuth flow; one is created if omitted.
    """
    cfg = settings or service.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.shutdown()
        await app.state.http.aclose()

    app = FastAPI(title="bumpdash", version=__version__, lifespan=lifespan)

    app.state.settings = cfg
    app.state.service = service
    app.state.guilds = guilds
    app.state.sessions = sessions or SessionStore(cfg.session_max_age_s)
    app.state.http = http or httpx.AsyncClient(timeout=float(cfg.http_timeout_s))

    app.add_middleware(
        SessionMiddleware,
        secret_key=cfg.session_secret,
        session_cookie="bumpdash_session",
        max_age=int(cfg.session_max_age_s),
        same_site="lax",
    )

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired):  # noqa: ARG001
        return RedirectResponse("/login", status_code=302)

    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "gateway": "ready" if service.gate.is_ready else "waiting",
            "scheduled": len(service.scheduler),
            "configured": len(service.store),
        }

    app.include_router(pages_router)
    app.include_router(auth_router)
    app.include_router(dashboard_router)

    return app


async def serve(settings: Settings) -> None:
    """
    Run the dashboard (uvicorn) and the bot (discord.py) on one event loop.

    If the bot stops with an error (bad token, lost gateway), the web server is
    stopped too and the error is re-raised.
    """
    import uvicorn

    from .discord.bot import BumpBot

    store = ConfigStore.load(settings.config_path)
    rest = DiscordRest(
        settings.discord_bot_token,
        base_url=settings.discord_api_base,
        timeout=settings.http_timeout_s,
    )
    service = BumpService(settings, store, rest)
    bot = BumpBot(service)
    app = create_app(service, guilds=bot, settings=settings)

    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=int(settings.port), log_level=settings.log_level.lower())
    )

    def _on_bot_exit(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.error("Bot login failed: %s", task.exception())
        server.should_exit = True

    bot_task = asyncio.create_task(bot.start(settings.discord_bot_token), name="discord-bot")
    bot_task.add_done_callback(_on_bot_exit)

    logger.info("Web dashboard on http://%s:%s", settings.host, settings.port)
    try:
        await server.serve()
    finally:
        if not bot.is_closed():
            await bot.close()
        if not bot_task.done():
            bot_task.cancel()
        await asyncio.gather(bot_task, return_exceptions=True)
        await service.shutdown()
        await rest.aclose()

    if not bot_task.cancelled() and bot_task.exception() is not None:
        raise bot_task.exception()


def run(settings: Optional[Settings] = None) -> None:
    cfg = settings or default_settings
    logging.basicConfig(level=getattr(logging, str(cfg.log_level).upper(), logging.INFO))
    cfg.validate_required()
    asyncio.run(serve(cfg))
