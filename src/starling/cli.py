"""Starling CLI.

Usage:
    starling stream site --follow 12,34     # Print events for followed accounts
    starling stream user                    # Print the authenticated user's stream
    starling call statuses.update status=hi # Run one API call
    starling lists unsubscribe OWNER ID     # Unsubscribe from a list
    starling config                         # Show resolved configuration

Global options:
    --config PATH   YAML config file (STARLING_* variables still apply)
    --verbose       Debug logging on stderr
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .client import StarlingClient, create_client
from .config import StarlingConfig
from .errors import AuthorizationError, StarlingError, TransportFailure
from .protocol.events import StreamEvent
from .stream import SessionState
from .subscribers import HandlerSet
from .transport.base import StreamRequest

logger = logging.getLogger(__name__)


def parse_follow(value: str) -> list[int]:
    """Parse a comma-separated list of account ids."""
    ids = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise click.BadParameter(f"not an account id: {part!r}", param_hint="--follow")
    if not ids:
        raise click.BadParameter("at least one account id is required", param_hint="--follow")
    return ids


def parse_params(pairs: tuple[str, ...]) -> dict[str, str]:
    """Parse KEY=VALUE arguments into a parameter mapping."""
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="PARAMS")
        params[key] = value
    return params


def format_event(event: StreamEvent) -> str:
    """One JSON line per event."""
    return json.dumps(event.model_dump(mode="json", exclude_none=True), ensure_ascii=False)


def _load_config(ctx: click.Context) -> StarlingConfig:
    try:
        return StarlingConfig.load(ctx.obj.get("config_path"))
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _build_client(ctx: click.Context) -> StarlingClient:
    config = _load_config(ctx)
    # Tests inject a transport through the context object
    transport = ctx.obj.get("transport")
    if transport is not None:
        return StarlingClient(config=config, transport=transport, owns_transport=False)
    return create_client(config)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Starling - asynchronous client for the social messaging API."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# =============================================================================
# Stream Commands
# =============================================================================


@main.group()
def stream() -> None:
    """Consume streaming connections."""
    pass


@stream.command("site")
@click.option("--follow", required=True, help="Comma-separated account ids")
@click.option("--with-followings", is_flag=True, help="Include events from followed accounts")
@click.option("--max-events", "-n", type=int, default=0, help="Stop after N events (0 = run forever)")
@click.pass_context
def stream_site(ctx: click.Context, follow: str, with_followings: bool, max_events: int) -> None:
    """Print events for several accounts over one connection.

    Examples:

        starling stream site --follow 6253282,783214
        starling stream site --follow 6253282 -n 10
    """
    follow_ids = parse_follow(follow)
    request = StreamRequest.site(follow_ids, with_followings=with_followings)
    _run_stream(ctx, request, follow_ids, max_events)


@stream.command("user")
@click.option("--max-events", "-n", type=int, default=0, help="Stop after N events (0 = run forever)")
@click.pass_context
def stream_user(ctx: click.Context, max_events: int) -> None:
    """Print the authenticated user's stream.

    Examples:

        starling stream user
    """
    _run_stream(ctx, StreamRequest.user(), None, max_events)


def _run_stream(
    ctx: click.Context,
    request: StreamRequest,
    follow_ids: list[int] | None,
    max_events: int,
) -> None:
    client = _build_client(ctx)

    async def execute() -> bool:
        done = asyncio.Event()
        received = 0
        fatal: list[StarlingError] = []

        def on_event(event: StreamEvent) -> None:
            nonlocal received
            click.echo(format_event(event))
            received += 1
            if max_events and received >= max_events:
                done.set()

        def on_error(error: StarlingError) -> None:
            click.echo(f"Error: {error}", err=True)
            if isinstance(error, AuthorizationError):
                fatal.append(error)

        def on_state_change(state: SessionState) -> None:
            if state == SessionState.CLOSED:
                done.set()

        handlers = HandlerSet.for_all(on_event)
        async with client:
            if follow_ids is None:
                session = client.start_stream(
                    request, handlers=handlers, on_error=on_error, on_state_change=on_state_change
                )
            else:
                session = client.start_stream(
                    request,
                    subscriptions={account: handlers for account in follow_ids},
                    on_error=on_error,
                    on_state_change=on_state_change,
                )
            click.echo(f"Streaming ({request.kind.value}), Ctrl-C to stop", err=True)
            await done.wait()
            await client.stop_stream(session)
        return not fatal

    try:
        ok = asyncio.run(execute())
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
        return
    if not ok:
        sys.exit(1)


# =============================================================================
# Command Submission
# =============================================================================


@main.command("call")
@click.argument("operation")
@click.argument("params", nargs=-1)
@click.pass_context
def call(ctx: click.Context, operation: str, params: tuple[str, ...]) -> None:
    """Submit one API call and print its result as JSON.

    Examples:

        starling call statuses.update status=hello
        starling call statuses.show id=12345
        starling call account.rate_limit_status
    """
    parsed = parse_params(params)
    client = _build_client(ctx)

    async def execute() -> tuple[bool, Any]:
        outcome: asyncio.Future[tuple[bool, Any]] = asyncio.get_running_loop().create_future()
        async with client:
            command = client.submit_async(
                operation,
                parsed,
                on_success=lambda payload: outcome.set_result((True, payload)),
                on_failure=lambda failure: outcome.set_result((False, failure)),
            )
            logger.debug(f"Submitted {command.cmd} ({command.id})")
            return await outcome

    ok, value = asyncio.run(execute())
    if not ok:
        failure: TransportFailure = value
        click.echo(f"Error: {failure}", err=True)
        click.echo(json.dumps(failure.to_dict(), indent=2), err=True)
        sys.exit(1)
    if isinstance(value, str):
        click.echo(value)
    else:
        click.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


# =============================================================================
# List Commands
# =============================================================================


@main.group("lists")
def lists_group() -> None:
    """Manage list subscriptions."""
    pass


@lists_group.command("unsubscribe")
@click.argument("owner")
@click.argument("list_id", type=int)
@click.pass_context
def lists_unsubscribe(ctx: click.Context, owner: str, list_id: int) -> None:
    """Unsubscribe from another user's list.

    Examples:

        starling lists unsubscribe twitterapi 12345
    """
    client = _build_client(ctx)

    async def execute() -> str:
        async with client:
            user_list = await client.lists.unsubscribe(owner, list_id)
        return user_list.full_name or user_list.name

    try:
        name = asyncio.run(execute())
    except TransportFailure as e:
        click.echo(f"Failed to unsubscribe: {e}", err=True)
        sys.exit(1)
    click.echo(f"Unsubscribed from list {name} ({list_id})")


# =============================================================================
# Config Command
# =============================================================================


@main.command("config")
@click.option("--show-secrets", is_flag=True, help="Do not mask the password")
@click.pass_context
def show_config(ctx: click.Context, show_secrets: bool) -> None:
    """Show the resolved configuration as JSON.

    Examples:

        starling config
        starling --config starling.yaml config
    """
    config = _load_config(ctx)
    click.echo(json.dumps(config.to_dict(include_secrets=show_secrets), indent=2))


if __name__ == "__main__":
    main()
