"""CLI entry point for comment monitor."""

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import Optional

import typer

from comment_monitor.adapters.sinks import ConsoleSink
from comment_monitor.config import Settings, get_settings
from comment_monitor.core import AgentError
from comment_monitor.core.documents import parse_document_url
from comment_monitor.use_cases import MonitorApp

app = typer.Typer(help="Watch document comments and hand new replies to an agent.")

ConfigOption = typer.Option(Path("config.yaml"), "--config", "-c", help="YAML config file")


def _print_credentials(settings: Settings) -> None:
    print("\n🔑 Credentials:")
    if settings.openai_api_key:
        print("  ✓ OPENAI_API_KEY - agent enabled")
    else:
        print("  ✗ OPENAI_API_KEY - not found (agent disabled)")

    if settings.mcp_auth_token:
        print("  ✓ MCP_AUTH_TOKEN - for the document tool server")
    else:
        print("  ⚠️  MCP_AUTH_TOKEN - not found (unauthenticated requests)")

    print(f"\n⚙️  MCP server: {settings.mcp.server_url}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port"),
    config: Path = ConfigOption,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    from comment_monitor.api import create_app

    settings = get_settings(config)
    _print_credentials(settings)
    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        access_log=False,
    )


@app.command()
def watch(
    target: str = typer.Argument(..., help="Document URL or document id"),
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", help="Poll interval in milliseconds"),
    config: Path = ConfigOption,
) -> None:
    """Monitor one document in the foreground until interrupted."""
    ref = parse_document_url(target)
    document_id = ref.document_id if ref else target

    settings = get_settings(config)
    _print_credentials(settings)
    asyncio.run(async_watch(settings, document_id, interval_ms))


@app.command()
def run(
    instruction: str = typer.Argument(..., help="Instruction for the agent"),
    config: Path = ConfigOption,
) -> None:
    """Run the agent once and print its progress."""
    settings = get_settings(config)
    _print_credentials(settings)
    ok = asyncio.run(async_run(settings, instruction))
    if not ok:
        raise typer.Exit(code=1)


async def async_watch(settings: Settings, document_id: str, interval_ms: Optional[int]) -> None:
    """Async implementation of watch command."""
    monitor = MonitorApp.from_settings(settings)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await monitor.initialize()
        monitor.start_monitor(document_id, interval_ms)
        print("Press Ctrl-C to stop\n" + "=" * 70)
        await stop.wait()
    finally:
        await monitor.shutdown()


async def async_run(settings: Settings, instruction: str) -> bool:
    """Async implementation of run command."""
    sink = ConsoleSink()
    monitor = MonitorApp.from_settings(settings, sink=sink)

    if not monitor.agent_ready:
        print("❌ Agent not initialized: set OPENAI_API_KEY")
        return False

    print(f"\n🚀 Running: {instruction}\n")
    try:
        async for event in monitor.run_agent_streaming(instruction):
            await sink.emit(event)
        return True
    except Exception as e:
        await sink.emit(AgentError(str(e)))
        return False
    finally:
        await monitor.shutdown()


if __name__ == "__main__":
    app()
