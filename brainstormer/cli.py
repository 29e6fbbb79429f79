"""CLI interface."""
from __future__ import annotations

import json
import logging
from typing import Optional

import typer

from brainstormer.agents.generator import build_generator
from brainstormer.services.session_service import SessionStore, execute_next_step, free_chat, request_plan

app = typer.Typer(add_completion=False)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")):
    """Build whiteboard diagrams from natural-language requests."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@app.command()
def plan(text: str = typer.Argument(..., help="What to draw.")):
    """Print the step plan for a request."""
    session = SessionStore().open()
    result = request_plan(session, text, build_generator())
    if result.error:
        typer.echo(result.error, err=True)
        raise typer.Exit(code=1)
    for index, step in enumerate(result.steps, start=1):
        typer.echo(f"{index}. {step}")


@app.command()
def run(
    text: str = typer.Argument(..., help="What to draw."),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", help="Stop after this many steps."),
):
    """Plan a request, execute every step and print the resulting elements as JSON."""
    generator = build_generator()
    session = SessionStore().open()
    planned = request_plan(session, text, generator)
    if planned.error:
        typer.echo(planned.error, err=True)
        raise typer.Exit(code=1)
    executed = 0
    while not session.plan_complete and (max_steps is None or executed < max_steps):
        result = execute_next_step(session, generator)
        if result.error:
            typer.echo(result.error, err=True)
            raise typer.Exit(code=1)
        typer.echo(result.reply, err=True)
        executed += 1
    typer.echo(json.dumps([element.to_wire() for element in session.elements], indent=2))


@app.command()
def chat(text: str = typer.Argument(..., help="Message for the assistant.")):
    """Send one free-chat message and print the reply and any new elements."""
    session = SessionStore().open()
    result = free_chat(session, text, build_generator())
    if result.error:
        typer.echo(result.error, err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.model_dump(by_alias=True, mode="json", exclude_none=True), indent=2))


if __name__ == "__main__":
    app()
