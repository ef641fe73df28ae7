"""Command line interface for running and inspecting stepflow."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from stepflow import build_runtime, get_state_store, load_config
from stepflow.contracts import TOPIC_PAYLOADS
from stepflow.errors import StepRegistrationError
from stepflow.runtime import CronScheduler, StepRegistry

app = typer.Typer(help="CLI for stepflow workflows")

# Command groups
steps_app = typer.Typer(help="Commands for inspecting registered steps")
cron_app = typer.Typer(help="Commands for scheduled jobs")
state_app = typer.Typer(help="Commands for reading the state store")
topics_app = typer.Typer(help="Commands for topic contracts")

app.add_typer(steps_app, name="steps")
app.add_typer(cron_app, name="cron")
app.add_typer(state_app, name="state")
app.add_typer(topics_app, name="topics")


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, help="Override configured log level")) -> None:
    """stepflow CLI entry point."""
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _with_runtime(registry: StepRegistry, coro_factory):
    await registry.bus.connect()
    await registry.bind()
    try:
        result = await coro_factory()
        await registry.bus.drain()
        return result
    finally:
        await registry.bus.close()


@app.command("serve")
def serve(
    host: Optional[str] = None,
    port: Optional[int] = None,
    scheduler: bool = typer.Option(True, help="Run cron steps while serving"),
) -> None:
    """
    Serve every request-triggered step over HTTP.

    Event steps are bound to the configured bus and, unless disabled, cron
    steps run on their schedules for the lifetime of the server.

    Example:
        stepflow serve --port 8080
        stepflow serve --no-scheduler
    """
    import uvicorn

    from stepflow.runtime.api import create_app

    config = load_config()
    registry = build_runtime(config)
    cron = CronScheduler(registry) if scheduler else None
    api = create_app(registry, scheduler=cron)
    uvicorn.run(api, host=host or config.api.host, port=port or config.api.port)


@app.command("trigger")
def trigger(step_name: str, body: str = typer.Option("{}", help="JSON request body")) -> None:
    """
    Invoke a request-triggered step in-process and wait for its workflow.

    Example:
        stepflow trigger FetchData --body '{"source": "s1", "batchSize": 3}'
    """
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON body: {exc.msg}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    registry = build_runtime()
    try:
        response = asyncio.run(_with_runtime(registry, lambda: registry.invoke_api(step_name, parsed)))
    except StepRegistrationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Status: {response.status}")
    typer.echo(json.dumps(response.body, indent=2))
    if response.status >= 400:
        raise typer.Exit(code=1)


@steps_app.command("list")
def steps_list() -> None:
    """List every step with its trigger and declared topics."""
    registry = build_runtime()
    for row in registry.describe():
        typer.echo(f"{row['name']}\t{row['trigger']}")
        if row["subscribes"]:
            typer.echo(f"  subscribes: {', '.join(row['subscribes'])}")
        typer.echo(f"  emits: {', '.join(row['emits']) or '(none)'}")


@cron_app.command("run")
def cron_run(step_name: str) -> None:
    """
    Run one scheduled job immediately.

    Example:
        stepflow cron run SystemHealthCheck
    """
    registry = build_runtime()
    try:
        asyncio.run(_with_runtime(registry, lambda: registry.run_cron(step_name)))
    except StepRegistrationError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{step_name} completed")


@state_app.command("get")
def state_get(namespace: str, key: str) -> None:
    """Print the record stored under NAMESPACE/KEY."""
    store = get_state_store()
    record = asyncio.run(store.get(namespace, key))
    if record is None:
        typer.echo("Record not found")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(record, indent=2))


@state_app.command("list")
def state_list(namespace: str) -> None:
    """List the keys stored in NAMESPACE."""
    store = get_state_store()
    records = asyncio.run(store.items(namespace))
    if not records:
        typer.echo("No records found")
        return
    for key, record in records.items():
        typer.echo(f"{key}\t{record.get('status', '-')}")


@topics_app.command("schema")
def topics_schema(topic: str) -> None:
    """Print the JSON schema of a topic payload."""
    model = TOPIC_PAYLOADS.get(topic)
    if model is None:
        typer.echo(f"Unknown topic: {topic}")
        raise typer.Exit(code=1)
    typer.echo(json.dumps(model.model_json_schema(by_alias=True), indent=2))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
