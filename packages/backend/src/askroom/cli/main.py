"""Askroom CLI — run a server, check it, and peek at rooms.

Usage:
    askroom serve --port 8081                   # Run one server process
    askroom health                               # Store/fabric status of a server
    askroom rooms --status active                # List rooms
    askroom room K7Q2ZD                          # Full snapshot of one room
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

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("ASKROOM_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at an Askroom server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=10.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an async test) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


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


def _status_color(status: str) -> str:
    colors = {
        "active": "green",
        "closed": "red",
        "healthy": "green",
        "degraded": "yellow",
        "ok": "green",
    }
    return colors.get(status, "white")


async def _get(path: str, params: Optional[dict] = None) -> dict | list:
    """GET an API path; exit with a readable message on failure."""
    async with _client() as c:
        try:
            r = await c.get(path, params=params)
        except httpx.HTTPError as e:
            click.secho(f"Cannot reach {_api_url()}: {e}", fg="red", err=True)
            sys.exit(1)
    if r.status_code == 404:
        click.secho(r.json().get("detail", "Not found"), fg="red", err=True)
        sys.exit(1)
    r.raise_for_status()
    return r.json()


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="askroom")
def main():
    """Askroom — real-time audience Q&A rooms."""


# ---------------------------------------------------------------------------
# askroom serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: ASKROOM_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: ASKROOM_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run one Askroom server process.

    Run several on different ports against the same database and Redis
    to get a multi-server deployment.
    """
    import uvicorn

    from askroom.config import settings

    uvicorn.run(
        "askroom.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# askroom health
# ---------------------------------------------------------------------------


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def health(as_json: bool):
    """Show a server's health and dependency status."""
    data = _run(_get("/api/v1/health"))
    if as_json:
        click.echo(_pretty_json(data))
        return

    status = data.get("status", "unknown")
    click.secho(f"{_api_url()}  ", bold=True, nl=False)
    click.secho(status, fg=_status_color(status))
    click.echo(f"  Server:      {data.get('serverId')}  (v{data.get('version')})")
    for key in ("store", "fabric"):
        value = str(data.get(key, "unknown"))
        click.echo(f"  {key.capitalize():<12} {click.style(value, fg=_status_color(value))}")
    click.echo(f"  Connections: {data.get('connections', 0)} in {data.get('rooms', 0)} room(s)")
    if status != "healthy":
        sys.exit(1)


# ---------------------------------------------------------------------------
# askroom rooms
# ---------------------------------------------------------------------------


@main.command()
@click.option(
    "--status", "-s", "status_filter",
    type=click.Choice(["active", "closed"]),
    help="Filter by status",
)
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def rooms(status_filter: Optional[str], as_json: bool):
    """List rooms."""
    params = {"status": status_filter} if status_filter else None
    data = _run(_get("/api/v1/rooms", params=params))
    if as_json:
        click.echo(_pretty_json(data))
        return
    if not data:
        click.echo("No rooms.")
        return

    _print_table(data, [
        ("CODE", "roomId", 8),
        ("NAME", "sessionName", 30),
        ("STATUS", "sessionStatus", 8),
        ("PEOPLE", "attendeeCount", 6),
        ("QUESTIONS", "questionCount", 9),
        ("OWNER", "owner", 20),
    ])


# ---------------------------------------------------------------------------
# askroom room CODE
# ---------------------------------------------------------------------------


@main.command()
@click.argument("room_id")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def room(room_id: str, as_json: bool):
    """Show one room: attendees and questions, most upvoted first."""
    data = _run(_get(f"/api/v1/rooms/{room_id.strip().upper()}"))
    if as_json:
        click.echo(_pretty_json(data))
        return

    status = data["sessionStatus"]
    click.secho(f"{data['roomId']}  {data['sessionName']}  ", bold=True, nl=False)
    click.secho(status, fg=_status_color(status))
    click.echo(f"  Owner: {data['owner']}")

    attendees = data.get("attendees", [])
    click.echo(f"  Attendees ({len(attendees)}): " + ", ".join(a["name"] for a in attendees))

    questions = sorted(data.get("questions", []), key=lambda q: -q["upVotes"])
    click.echo()
    if not questions:
        click.echo("  No questions yet.")
        return
    for q in questions:
        marks = ""
        if q["answered"]:
            marks += click.style(" [answered]", fg="green")
        if q["highlighted"]:
            marks += click.style(" [highlighted]", fg="yellow")
        click.echo(f"  {q['upVotes']:>3}  {q['questionText']}  - {q['authorName']}{marks}")


if __name__ == "__main__":
    main()
