"""Command line entrypoint.

``sourcarr`` (or ``sourcarr serve``) runs the HTTP service.
``sourcarr resolve TITLE`` runs one resolution through the same wiring
and prints the resulting session state as JSON, which is handy for
checking catalog and CDN reachability from a shell.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any, cast

import structlog
import uvicorn

from sourcarr.domain.entities.playback import InitialParams
from sourcarr.infrastructure.config import AppConfig, load_config
from sourcarr.infrastructure.logging.setup import configure_logging
from sourcarr.interfaces.api.sessions.serializers import (
    command_to_dict,
    state_to_dict,
)
from sourcarr.interfaces.app_state import AppState
from sourcarr.interfaces.composition import lifespan
from sourcarr.interfaces.main import build_app

log = structlog.get_logger(__name__)

DEFAULT_PORT = 7980

# argparse destination -> flat config key understood by load_config
_OVERRIDE_FLAGS: tuple[tuple[str, str], ...] = (
    ("catalog_url", "catalog_base_url"),
    ("log_level", "log_level"),
    ("log_format", "log_format"),
    ("idle_timeout", "playback_session_idle_seconds"),
)


def _add_config_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("configuration")
    group.add_argument("--config", default=None, help="Path to YAML config file.")
    group.add_argument("--dotenv", default=None, help="Path to .env file.")
    group.add_argument(
        "--catalog-url",
        default=None,
        help="Base URL of the provider aggregation API.",
    )
    group.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    group.add_argument("--log-format", default=None, choices=["json", "console"])
    group.add_argument(
        "--idle-timeout",
        default=None,
        type=float,
        metavar="SECONDS",
        help="Close sessions idle this long (0 keeps them until page hide).",
    )


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sourcarr",
        description="Multi-provider video source resolution service.",
    )
    _add_config_flags(parser)

    server = parser.add_argument_group("server")
    server.add_argument("--host", default=None, help="Bind host (HOST env).")
    server.add_argument("--port", default=None, type=int, help="Bind port (PORT env).")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.add_parser("serve", help="Run the HTTP service (default).")

    resolve = commands.add_parser(
        "resolve", help="Resolve one title and print the session as JSON."
    )
    resolve.add_argument("title")
    resolve.add_argument("--year", default="")
    resolve.add_argument("--source", default="", help="Provider key of a direct link.")
    resolve.add_argument("--id", dest="source_id", default="", help="Provider id.")
    resolve.add_argument(
        "--prefer",
        action="store_true",
        help="Rank providers even for a direct link.",
    )

    return parser.parse_args(list(argv) if argv is not None else None)


def build_cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Flat config overrides for every flag that was given."""
    overrides: dict[str, Any] = {}
    for dest, key in _OVERRIDE_FLAGS:
        value = getattr(args, dest, None)
        if value is not None:
            overrides[key] = value
    return overrides


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=build_cli_overrides(args),
    )


def _serve(args: argparse.Namespace, config: AppConfig, log_config: Any) -> int:
    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = int(args.port or os.getenv("PORT", str(DEFAULT_PORT)))
    log.info(
        "sourcarr_starting",
        host=host,
        port=port,
        environment=config.environment,
        catalog=config.catalog.base_url,
    )
    uvicorn.run(build_app(config), host=host, port=port, log_config=log_config)
    return 0


async def resolve_once(config: AppConfig, params: InitialParams) -> dict[str, Any]:
    """Run one session resolution with the production wiring.

    The session is closed again before returning; the JSON-ready result
    carries the final state, the progress stages and the initial
    player commands.
    """
    app = build_app(config)
    async with lifespan(app):
        registry = cast(AppState, app.state).registry
        session_id, session = await registry.open("cli", params)
        result = {
            "state": state_to_dict(session.state),
            "progress": [p.stage for p in session.progress_history],
            "commands": [command_to_dict(c) for c in session.initial_commands],
        }
        await registry.close(session_id)
    return result


def _resolve(args: argparse.Namespace, config: AppConfig) -> int:
    params = InitialParams(
        title=args.title,
        year=args.year,
        source=args.source,
        id=args.source_id,
        prefer=args.prefer,
    )
    result = asyncio.run(resolve_once(config, params))
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 1 if result["state"]["error"] else 0


def start(argv: Iterable[str] | None = None) -> int:
    """Process entrypoint: load config once, configure logging, dispatch."""
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)
    config = _load(args)
    log_config = configure_logging(config)

    if args.command == "resolve":
        return _resolve(args, config)
    return _serve(args, config, log_config)


if __name__ == "__main__":
    raise SystemExit(start())
