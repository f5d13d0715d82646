"""Built-in CLI sub-commands for chartlink.

This package groups the Typer sub-command modules that form the CLI's
command tree:

* :mod:`~chartlink.commands.auth` -- log in, refresh, log out, status.
* :mod:`~chartlink.commands.tiles` -- locate, name and fetch chart tiles.
* :mod:`~chartlink.commands.config` -- view and modify global settings.

Each module exports a :class:`typer.Typer` sub-application.
"""

from __future__ import annotations

import typer

from chartlink.models import GlobalConfig


def load_config(ctx: typer.Context) -> GlobalConfig:
    """Resolve the effective configuration from the root options in ``ctx.obj``."""
    from chartlink.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(
        cli_client_id=obj.get("client_id"),
        cli_cache_dir=obj.get("cache_dir"),
    )


def is_forced(ctx: typer.Context) -> bool:
    return bool(ctx.obj.get("force", False)) if ctx.obj else False
