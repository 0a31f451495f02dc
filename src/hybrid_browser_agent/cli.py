"""Command line interface for hybrid-browser-agent."""

from __future__ import annotations

import asyncio
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from .agent.loop import LoopOutcome, LoopTerminal
from .config import AppConfig, load_config
from .executor.client import ExecutorClient
from .factory import build_context

app = typer.Typer(help="Hybrid Browser Agent entry point")


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("hybrid-browser-agent"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]


@app.command()
def serve(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    host: Annotated[Optional[str], typer.Option("--host", help="Binding address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="HTTP port.")] = None,
    mode: Annotated[
        Optional[str],
        typer.Option("--mode", help="Deployment mode: single or hybrid."),
    ] = None,
) -> None:
    """Run the control-plane HTTP service."""

    import uvicorn

    from .server.service import create_app

    overrides: dict[str, Any] = {}
    if host is not None or port is not None:
        overrides["server"] = {}
        if host is not None:
            overrides["server"]["host"] = host
        if port is not None:
            overrides["server"]["port"] = port
    if mode is not None:
        overrides["deployment_mode"] = mode

    config = load_config(config_path, env_file=env_file, **overrides)
    context = build_context(config)
    uvicorn.run(create_app(context), host=config.server.host, port=config.server.port)


@app.command()
def executor(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    url: Annotated[
        Optional[str],
        typer.Option("--url", help="Control-plane base URL."),
    ] = None,
    token: Annotated[
        Optional[str],
        typer.Option("--token", help="Shared executor secret."),
    ] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run browsers headless (or headed)."),
    ] = None,
) -> None:
    """Connect a local executor to a running control plane."""

    overrides: dict[str, Any] = {}
    if url is not None or token is not None or headless is not None:
        overrides["executor"] = {}
        if url is not None:
            overrides["executor"]["server_url"] = url
        if token is not None:
            overrides["executor"]["secret"] = token
        if headless is not None:
            overrides["executor"]["headless"] = headless

    config = load_config(config_path, env_file=env_file, **overrides)
    client = ExecutorClient(config.executor, browser_config=config.browser)
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:  # pragma: no cover - interactive shutdown
        typer.echo("Executor stopped.")


@app.command()
def run(
    message: Annotated[str, typer.Argument(help="Message for the agent, usually with a URL.")],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    session_id: Annotated[
        str,
        typer.Option("--session", help="Session identifier."),
    ] = "cli",
    llm_provider: Annotated[
        Optional[str],
        typer.Option("--llm-provider", help="LLM provider to use."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="LLM model identifier."),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="API key for the LLM provider."),
    ] = None,
    headless: Annotated[
        bool,
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = True,
    max_actions: Annotated[
        Optional[int],
        typer.Option("--max-actions", help="Actions allowed for this turn."),
    ] = None,
) -> None:
    """Run a single agent turn in-process and print the result."""

    overrides: dict[str, Any] = {"deployment_mode": "single"}
    if any([llm_provider, model, api_key]):
        overrides["llm"] = {}
        if llm_provider:
            overrides["llm"]["provider"] = llm_provider
        if model:
            overrides["llm"]["model"] = model
        if api_key:
            overrides["llm"]["api_key"] = api_key
    if max_actions is not None:
        overrides["agent"] = {"max_actions": max_actions}

    config = load_config(config_path, env_file=env_file, **overrides)
    outcome = asyncio.run(_run_turn(config, session_id, message, headless))
    typer.echo(f"{outcome.terminal.value}: {outcome.message}")
    if outcome.terminal is LoopTerminal.ERROR:
        raise typer.Exit(code=1)


async def _run_turn(config: AppConfig, session_id: str, message: str, headless: bool) -> LoopOutcome:
    context = build_context(config)
    await context.start()
    try:
        session = context.get_session(session_id, headless=headless)
        return await context.agent.handle_message(session, message)
    finally:
        await context.shutdown()


if __name__ == "__main__":
    app()
