"""Auth commands -- log in to the chart provider and manage the saved login.

Provides the ``chartlink auth`` sub-command group. ``login`` runs the
interactive browser flow through the loopback callback server, ``relogin``
refreshes silently with the saved refresh token, ``logout`` forgets it and
``status`` reports what is configured.

Typical workflow::

    chartlink auth login         # browser login, saves the refresh token
    chartlink auth relogin       # later: silent login
    chartlink auth logout
"""

from __future__ import annotations

import threading
import webbrowser
from typing import Optional

import typer

from chartlink.commands import is_forced, load_config
from chartlink.exceptions import ChartlinkError, CredentialRejectedError, UnsupportedError
from chartlink.output import error, format_response, info, print_data, success, suggest


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the login URL instead of opening a browser."
    ),
    timeout: Optional[int] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser (default: login_timeout)."
    ),
) -> None:
    """Log in interactively through the browser.

    Starts the loopback callback server, opens the provider's login page and
    waits until the browser posts the result back. On success the refresh
    token is saved, so later commands can log in silently.

    Raises:
        typer.Exit: With the error's exit code if the login fails, times out
            or is not supported by this installation.

    Example::

        chartlink auth login
        chartlink auth login --no-browser --timeout 120
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    wait = timeout if timeout is not None else config.login_timeout

    try:
        with AuthSession.from_config(config) as session:
            url = session.start_auth()
            if no_browser:
                info("Open this URL to log in:")
                print_data(url)
            else:
                info(f"Opening the login page: {url}")
                _open_browser(url)
            info(f"Waiting up to {wait}s for the browser login...")
            session.wait_for_login(timeout=wait)
    except UnsupportedError as exc:
        error(str(exc))
        suggest("Provide the client secret: export CHARTLINK_CLIENT_SECRET=...")
        raise typer.Exit(code=exc.exit_code) from None
    except ChartlinkError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success("Logged in.")


@auth_app.command("relogin")
def auth_relogin(ctx: typer.Context) -> None:
    """Log in silently with the saved refresh token.

    Example::

        chartlink auth relogin
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    try:
        with AuthSession.from_config(config) as session:
            if not session.can_relogin():
                info("No saved login.")
                suggest("Log in first: chartlink auth login")
                raise typer.Exit(code=3)
            session.relogin()
    except CredentialRejectedError as exc:
        error(str(exc))
        suggest("Log in again: chartlink auth login")
        raise typer.Exit(code=exc.exit_code) from None
    except ChartlinkError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success("Logged in.")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Forget the saved login.

    Asks for confirmation unless ``--force`` is active.

    Example::

        chartlink auth logout
        chartlink --force auth logout
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    with AuthSession.from_config(config) as session:
        if not session.can_relogin():
            info("No saved login.")
            return
        if not is_forced(ctx):
            if not typer.confirm("Forget the saved login?"):
                info("Cancelled.")
                raise typer.Exit()
        session.logout()

    success("Logged out.")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether login is supported and whether a saved login exists.

    Example::

        chartlink auth status
        chartlink --json auth status
    """
    from chartlink.auth import AuthSession

    config = load_config(ctx)
    with AuthSession.from_config(config) as session:
        store = session.token_store
        format_response(
            {
                "supported": session.is_supported(),
                "saved_login": session.can_relogin(),
                "client_id": config.provider.client_id,
                "login_data": str(store.path) if store is not None else None,
            }
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_browser(url: str) -> None:
    # Some browser launchers block until the browser exits.
    threading.Thread(
        target=webbrowser.open, args=(url,), name="chartlink-browser", daemon=True
    ).start()
