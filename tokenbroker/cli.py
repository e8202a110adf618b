"""Command line interface for inspecting and managing stored credentials."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import typer

from tokenbroker import TokenBroker, get_store, load_config
from tokenbroker.errors import BrokerError
from tokenbroker.provider import HttpProviderClient
from tokenbroker.utils.retry import ensure_fresh_with_retry

app = typer.Typer(help="CLI for the OAuth token broker")


def _format_ts(ts: Optional[int]) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@asynccontextmanager
async def _open_broker() -> AsyncIterator[TokenBroker]:
    config = load_config()
    store = get_store(config=config)
    await store.open()
    try:
        async with HttpProviderClient(config.provider) as provider:
            yield TokenBroker.from_config(config, store, provider)
    finally:
        await store.close()


@app.callback()
def main() -> None:
    """Token broker CLI entry point."""
    pass


@app.command("list")
def list_credentials() -> None:
    """
    List every identity with stored credentials and its expiry.

    Example:
        tokenbroker list
        # Output: u1    2026-01-01 10:00:00 UTC
    """

    async def _run():
        async with _open_broker() as broker:
            return await broker.store.list_records()

    records = asyncio.run(_run())
    if not records:
        typer.echo("No credentials found")
        return
    for record in records:
        typer.echo(f"{record.identity}\t{_format_ts(record.expires_at)}")


@app.command("status")
def status(identity: str) -> None:
    """Show whether IDENTITY is connected. Never contacts the provider."""

    async def _run():
        async with _open_broker() as broker:
            return await broker.status(identity)

    result = asyncio.run(_run())
    if not result.connected:
        typer.echo(f"{identity}: not connected")
        raise typer.Exit(code=1)
    typer.echo(f"{identity}: connected (expires {_format_ts(result.expires_at)})")


@app.command("revoke")
def revoke(identity: str) -> None:
    """Delete stored credentials for IDENTITY."""

    async def _run():
        async with _open_broker() as broker:
            await broker.revoke(identity)

    asyncio.run(_run())
    typer.echo(f"Revoked credentials for {identity}")


@app.command("refresh")
def refresh(
    identity: str,
    attempts: int = typer.Option(3, min=1, help="Attempts on refresh timeout"),
) -> None:
    """
    Make sure IDENTITY holds a fresh access token, refreshing if needed.

    Retries with backoff only when the refresh times out; rejected refresh
    tokens require the user to log in again.

    Example:
        tokenbroker refresh u1 --attempts 5
    """

    async def _run():
        async with _open_broker() as broker:
            return await ensure_fresh_with_retry(broker, identity, attempts=attempts)

    try:
        record = asyncio.run(_run())
    except BrokerError as exc:
        typer.secho(f"{exc.kind.value}: {exc.message}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{identity}: fresh until {_format_ts(record.expires_at)}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
