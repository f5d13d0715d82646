"""Config commands -- view and modify global configuration.

Provides the ``chartlink config`` sub-command group for reading, updating
and resetting :class:`~chartlink.models.GlobalConfig`. Settings control the
identity provider endpoints, chart preferences (day/night, high/low),
request timeouts and where the saved login lives.
"""

from __future__ import annotations

from typing import Any

import typer

from chartlink.commands import is_forced
from chartlink.exceptions import ConfigError
from chartlink.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the saved configuration.

    Example::

        chartlink config show
        chartlink --json config show
    """
    from chartlink.config import get_config_dir, load_global_config

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g. 'charts.day_mode')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the current setting. List settings
    such as ``provider.scopes`` take a space-separated value, and ``none``
    clears an optional setting.

    Raises:
        typer.Exit: With code 2 for an unknown key or a value that does not
            validate.

    Example::

        chartlink config set charts.day_mode false
        chartlink config set request.timeout 60
        chartlink config set cache_dir ~/charts-login
    """
    from chartlink.config import load_global_config, save_global_config
    from chartlink.models import GlobalConfig

    try:
        config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        coerced = _coerce(target[final_key], value)
    except ValueError:
        error(f"Expected integer for {key}, got: {value}")
        raise typer.Exit(code=2) from None
    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValueError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active. The saved login is
    not touched; use ``chartlink auth logout`` for that.

    Example::

        chartlink config reset
        chartlink --force config reset
    """
    from chartlink.config import save_global_config
    from chartlink.models import GlobalConfig

    if not is_forced(ctx):
        if not typer.confirm("Reset all config to defaults?"):
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")


def _coerce(current: Any, value: str) -> Any:  # noqa: ANN401
    """Convert *value* to the type of *current*. Raises ValueError for bad ints."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, list):
        return value.split()
    if value.lower() == "none":
        return None
    return value
