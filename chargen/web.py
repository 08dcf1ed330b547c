"""Read-only HTML view of saved characters served with aiohttp."""

from __future__ import annotations

import logging

import aiohttp_jinja2
import jinja2
from aiohttp import web

from .config import Settings, configure_logging
from .content import ContentLoadError
from .errors import NotFoundError
from .service import CharacterService, create_service
from .sheet import character_path, sheet_context

__all__ = ["SERVICE_KEY", "create_app", "main"]

log = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", CharacterService)


async def list_characters(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        characters = await service.list_characters()
    except Exception:
        log.exception("Failed to fetch characters")
        raise web.HTTPInternalServerError(text="Failed to retrieve character list.")
    return aiohttp_jinja2.render_template("character_list.html", request, {"characters": characters})


async def view_character(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    name = request.match_info.get("name", "").strip()
    if not name:
        raise web.HTTPBadRequest(text="Character name is required in the path.")
    try:
        character = await service.get_character(name)
    except NotFoundError:
        raise web.HTTPNotFound(text=f"Character '{name}' not found.")
    except Exception:
        log.exception("Failed to fetch character '%s'", name)
        raise web.HTTPInternalServerError(text="Failed to retrieve character sheet.")
    return aiohttp_jinja2.render_template("character_sheet.html", request, sheet_context(character))


async def _close_service(app: web.Application) -> None:
    await app[SERVICE_KEY].aclose()


def create_app(service: CharacterService) -> web.Application:
    app = web.Application()
    app[SERVICE_KEY] = service
    aiohttp_jinja2.setup(
        app,
        loader=jinja2.PackageLoader("chargen", "templates"),
        autoescape=True,
        filters={"character_path": character_path},
    )
    app.router.add_get("/characters", list_characters)
    app.router.add_get("/characters/{name}", view_character)
    app.on_cleanup.append(_close_service)
    return app


def main() -> None:
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level or logging.INFO)
        service = create_service(settings)
    except (ContentLoadError, ValueError, OSError) as exc:
        configure_logging(logging.INFO)
        log.error("Initialization failed: %s", exc)
        raise SystemExit(1) from exc

    log.info("Starting web server on port %s", settings.port)
    try:
        web.run_app(create_app(service), port=settings.port, print=None)
    except KeyboardInterrupt:
        log.info("Shutting down web server")


if __name__ == "__main__":
    main()
