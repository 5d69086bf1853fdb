"""TuneTrace CLI — poke a running backend and run the poller by hand.

Usage:
    tunetrace health                          # Server + live channel status
    tunetrace login me@example.com            # Prints a bearer token
    export TUNETRACE_TOKEN=...                # Used by the commands below
    tunetrace notifications --page 2          # One page of the inbox
    tunetrace unread                          # Unread count
    tunetrace read <notification-id>          # Mark one as read
    tunetrace read-all                        # Mark everything as read
    tunetrace delete <notification-id>        # Delete one
    tunetrace poll-once                       # One poller run, in-process
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from tunetrace import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("TUNETRACE_API_URL", DEFAULT_API_URL).rstrip("/")


def _token() -> str:
    token = os.environ.get("TUNETRACE_TOKEN")
    if not token:
        click.secho(
            "Error: set TUNETRACE_TOKEN (get one with `tunetrace login`)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return token


def _client(authenticated: bool = True) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the TuneTrace backend."""
    headers = {"Authorization": f"Bearer {_token()}"} if authenticated else {}
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0, headers=headers)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _check(r: httpx.Response) -> dict:
    """Return the JSON body, or print the API's {"error": ...} and exit."""
    if r.is_error:
        try:
            message = r.json().get("error", r.text)
        except ValueError:
            message = r.text
        click.secho(f"Error ({r.status_code}): {message}", fg="red", err=True)
        sys.exit(1)
    return r.json()


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _outcome_color(outcome: str) -> str:
    return {
        "new_event_notified": "green",
        "no_new_event": "white",
        "check_failed": "red",
        "pending": "yellow",
    }.get(outcome, "white")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="tunetrace")
def main():
    """TuneTrace — concert discovery backend tools."""


# ---------------------------------------------------------------------------
# tunetrace health
# ---------------------------------------------------------------------------


@main.command()
def health():
    """Show server health and connected live clients."""
    _run(_health_impl())


async def _health_impl():
    async with _client(authenticated=False) as c:
        data = _check(await c.get("/api/health"))

    color = "green" if data.get("status") == "OK" else "yellow"
    click.secho(f"Status:    {data.get('status')}", fg=color, bold=True)
    click.echo(f"Version:   {data.get('version')}")
    click.echo(f"Database:  {data.get('database')}")
    click.echo(f"Catalog:   {'Ticketmaster' if data.get('ticketmaster') else 'synthetic'}")
    ws = data.get("websocket", {})
    click.echo(f"Live:      {ws.get('connectedClients', 0)} connected client(s)")


# ---------------------------------------------------------------------------
# tunetrace login
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
def login(email: str, password: str):
    """Log in and print a bearer token."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client(authenticated=False) as c:
        data = _check(await c.post("/api/auth/login", json={"email": email, "password": password}))

    user = data.get("user", {})
    click.secho(f"Logged in as {user.get('displayName')} <{user.get('email')}>", fg="green", err=True)
    click.echo(data["token"])


# ---------------------------------------------------------------------------
# tunetrace notifications / unread
# ---------------------------------------------------------------------------


@main.command()
@click.option("--page", "-p", default=1, help="Page number (1-indexed)")
@click.option("--limit", "-l", default=20, help="Page size")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def notifications(page: int, limit: int, as_json: bool):
    """List notifications, newest first."""
    _run(_notifications_impl(page, limit, as_json))


async def _notifications_impl(page: int, limit: int, as_json: bool):
    async with _client() as c:
        data = _check(await c.get("/api/notifications", params={"page": page, "limit": limit}))

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    items = data.get("notifications", [])
    if not items:
        click.echo("No notifications.")
        return

    click.secho(
        f"Notifications (page {data['currentPage']}/{data['totalPages']}, {data['total']} total):",
        bold=True,
    )
    click.echo()
    rows = [
        {
            "id": n["_id"],
            "read": "yes" if n["isRead"] else "NEW",
            "created": n["createdAt"][:19],
            "title": n["title"],
            "message": n["message"],
        }
        for n in items
    ]
    _print_table(rows, [
        ("ID", "id", 36),
        ("Read", "read", 4),
        ("Created", "created", 19),
        ("Message", "message", 60),
    ])


@main.command()
def unread():
    """Show the unread notification count."""
    _run(_unread_impl())


async def _unread_impl():
    async with _client() as c:
        data = _check(await c.get("/api/notifications/unread-count"))
    click.echo(data["count"])


# ---------------------------------------------------------------------------
# tunetrace read / read-all / delete
# ---------------------------------------------------------------------------


@main.command()
@click.argument("notification_id")
def read(notification_id: str):
    """Mark one notification as read."""
    _run(_read_impl(notification_id))


async def _read_impl(notification_id: str):
    async with _client() as c:
        data = _check(await c.patch(f"/api/notifications/{notification_id}/read"))
    click.secho(f"Marked read: {data['notification']['title']}", fg="green")


@main.command("read-all")
def read_all():
    """Mark every notification as read."""
    _run(_read_all_impl())


async def _read_all_impl():
    async with _client() as c:
        data = _check(await c.patch("/api/notifications/read-all"))
    click.secho(data["message"], fg="green")


@main.command()
@click.argument("notification_id")
def delete(notification_id: str):
    """Delete one notification."""
    _run(_delete_impl(notification_id))


async def _delete_impl(notification_id: str):
    async with _client() as c:
        data = _check(await c.delete(f"/api/notifications/{notification_id}"))
    click.secho(data["message"], fg="green")


# ---------------------------------------------------------------------------
# tunetrace poll-once
# ---------------------------------------------------------------------------


@main.command("poll-once")
@click.option("--probability", type=float, default=None,
              help="Override the synthetic new-event probability (0-1)")
def poll_once(probability: Optional[float]):
    """Run one concert-discovery pass against the configured database.

    Notifications are stored but nobody is connected to this process,
    so nothing is pushed live.
    """
    results = _run(_poll_once_impl(probability))
    if not results.checks:
        click.echo("No tracked artists.")
        return

    rows = [
        {
            "artist": c.artist_name,
            "user": c.user_id,
            "outcome": c.outcome.value,
            "notifications": len(c.notification_ids),
            "error": c.error or "",
        }
        for c in results.checks
    ]
    click.secho(f"Checks ({len(rows)}):", bold=True)
    click.echo()
    for row in rows:
        outcome = click.style(row["outcome"], fg=_outcome_color(row["outcome"]))
        click.echo(
            f"  {row['artist'][:24]:24s}  {row['user'][:8]}  {outcome:30s}  "
            f"+{row['notifications']}  {row['error'][:40]}"
        )
    summary = results.summary()
    click.echo()
    click.echo(
        f"notified={summary['notified']} unchanged={summary['unchanged']} "
        f"failed={summary['failed']} notifications={summary['notifications']}"
    )


async def _poll_once_impl(probability: Optional[float]):
    from tunetrace.catalog import SyntheticCatalog, build_catalog
    from tunetrace.config import settings
    from tunetrace.db.engine import engine
    from tunetrace.realtime.registry import LiveDeliveryRegistry
    from tunetrace.services.concert_poller import ConcertPoller

    catalog = build_catalog(settings)
    if probability is not None and isinstance(catalog, SyntheticCatalog):
        catalog.new_event_probability = probability

    poller = ConcertPoller(
        catalog,
        LiveDeliveryRegistry(),
        catalog_timeout=settings.catalog_timeout_seconds,
        max_concurrent=settings.poller_max_concurrent,
    )
    try:
        return await poller.run_once()
    finally:
        await catalog.close()
        await engine.dispose()


if __name__ == "__main__":
    main()
