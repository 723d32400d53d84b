"""CLI entry point for the wacli API server."""

import base64
from pathlib import Path

import click

from wacli import __version__
from wacli.config import load_config
from wacli.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """wacli API - WhatsApp session authentication over HTTP."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.option("--host", default=None, help="Override listen host.")
@click.option("--port", "-p", type=int, default=None, help="Override listen port.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the API server."""
    import asyncio

    from wacli.daemon import Daemon
    from wacli.errors import StartupError

    config = ctx.obj["config"]
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port

    async def _serve():
        daemon = Daemon(config=config)

        try:
            await daemon.start()
            click.echo(f"wacli API listening on {config.host}:{daemon.server.get_port()}")
            click.echo("Press Ctrl+C to stop")
            await daemon.run_forever()
        except StartupError as e:
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)
        finally:
            await daemon.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        pass


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"wacli-api version {__version__}")


@main.group()
@click.option(
    "--url",
    default=None,
    help="API base URL (default: http://127.0.0.1:<port>).",
)
@click.option(
    "--api-key",
    envvar="WACLI_API_KEY",
    default=None,
    help="API key (default: first configured key).",
)
@click.pass_context
def auth(ctx: click.Context, url: str | None, api_key: str | None) -> None:
    """Session authentication commands against a running server."""
    config = ctx.obj["config"]
    ctx.obj["base_url"] = (url or f"http://127.0.0.1:{config.port}").rstrip("/")
    if api_key is None and config.api_keys:
        api_key = config.api_keys[0]
    ctx.obj["api_key"] = api_key


def _call(
    ctx: click.Context,
    method: str,
    path: str,
    body: dict | None = None,
    timeout: float = 30.0,
) -> tuple[int, dict]:
    """Call the API and return (status, json body).

    Exits with status 1 when the server cannot be reached.
    """
    import asyncio

    import aiohttp

    url = f"{ctx.obj['base_url']}/api/v1{path}"
    headers = {}
    if ctx.obj["api_key"]:
        headers["X-API-Key"] = ctx.obj["api_key"]

    async def _request():
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as http:
            async with http.request(method, url, json=body, headers=headers) as resp:
                return resp.status, await resp.json()

    try:
        return asyncio.run(_request())
    except aiohttp.ClientConnectorError:
        click.echo("Error: Cannot connect to server. Is it running?", err=True)
        click.echo("Start the server with: wacli serve", err=True)
        raise SystemExit(1)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        click.echo(f"Error: request failed: {e}", err=True)
        raise SystemExit(1)


def _fail(status: int, data: dict) -> None:
    click.echo(f"Error ({status}): {data.get('error', 'unknown error')}", err=True)
    raise SystemExit(1)


@auth.command("status")
@click.pass_context
def auth_status(ctx: click.Context) -> None:
    """Show authentication state."""
    status, data = _call(ctx, "GET", "/auth/status")
    if status != 200:
        _fail(status, data)
    click.echo(f"Authenticated: {'yes' if data['authenticated'] else 'no'}")
    click.echo(f"Connected:     {'yes' if data['connected'] else 'no'}")


@auth.command("qr")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Save QR code PNG to file instead of printing it.",
)
@click.option("--no-wait", is_flag=True, help="Return after showing the code.")
@click.pass_context
def auth_qr(ctx: click.Context, output: Path | None, no_wait: bool) -> None:
    """Link this server by scanning a QR code."""
    from wacli.qr import QrRenderer

    status, data = _call(ctx, "GET", "/auth/qr")
    if status == 409:
        click.echo("Already authenticated")
        return
    if status != 200:
        _fail(status, data)

    if output:
        encoded = data["qr_code_png"].split(",", 1)[1]
        output.write_bytes(base64.b64decode(encoded))
        click.echo(f"QR code saved to: {output}")
    else:
        click.echo(QrRenderer(data["qr_code"]).to_terminal())
    click.echo(data["instructions"])
    click.echo(f"Code expires in {data['expires_in']}s")

    if not no_wait:
        _wait_for_pairing(ctx)


@auth.command("pair")
@click.argument("phone_number")
@click.option("--no-wait", is_flag=True, help="Return after showing the code.")
@click.pass_context
def auth_pair(ctx: click.Context, phone_number: str, no_wait: bool) -> None:
    """Link this server with a code entered on the phone."""
    status, data = _call(ctx, "POST", "/auth/pair", {"phone_number": phone_number})
    if status == 409:
        click.echo("Already authenticated")
        return
    if status != 200:
        _fail(status, data)

    click.echo(f"Pairing code: {data['pairing_code']}")
    click.echo(data["instructions"])
    click.echo(f"Code expires in {data['expires_in']}s")

    if not no_wait:
        _wait_for_pairing(ctx)


@auth.command("wait")
@click.pass_context
def auth_wait(ctx: click.Context) -> None:
    """Block until pairing completes."""
    _wait_for_pairing(ctx)


def _wait_for_pairing(ctx: click.Context) -> None:
    click.echo("\nWaiting for pairing to complete...")
    wait_timeout = ctx.obj["config"].auth.wait_timeout
    status, data = _call(ctx, "GET", "/auth/wait", timeout=wait_timeout + 10)
    if status == 408:
        click.echo("Timeout waiting for pairing", err=True)
        raise SystemExit(1)
    if status != 200:
        _fail(status, data)
    click.echo(f"Authenticated ({data['message']})")


@auth.command("logout")
@click.confirmation_option(prompt="Unlink this device from the account?")
@click.pass_context
def auth_logout(ctx: click.Context) -> None:
    """Unlink this device and drop local credentials."""
    status, data = _call(ctx, "POST", "/auth/logout")
    if status == 401 and data.get("error") == "not authenticated":
        click.echo("Not authenticated")
        return
    if status != 200:
        _fail(status, data)
    click.echo("Logged out")
