"""
Typer CLI for the studyflow service.

Commands:
    studyflow db init          - Initialize database tables
    studyflow db migrate FILE  - Run a raw SQL migration file
    studyflow create-project   - Create an empty project
    studyflow ingest ID FILES  - Chunk text files into a project
    studyflow plan ID          - Build topics, roadmap and diagnostic
    studyflow act ID ACTION    - Generate an artifact or an inline note
    studyflow submit ART JSON  - Grade answers for an artifact
    studyflow checkin ID       - Adapt the roadmap to recent results
    studyflow show ID          - Show project status, roadmap and artifacts
    studyflow serve            - Run the HTTP API

Usage:
    studyflow --help
    studyflow --user alice create-project --title "Networking basics"
    studyflow --user alice ingest <project-id> notes/*.txt --max-chars 1000
    studyflow --user alice act <project-id> explain_term --term "subnet mask"
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from studyflow.db.database import async_session_scope, init_db, run_migration
from studyflow.errors import StudyFlowError
from studyflow.generation.oracle import GatewayOracle
from studyflow.logging_config import configure_logging
from studyflow.pipeline import StudyPipeline

T = TypeVar("T")

app = typer.Typer(help="studyflow CLI: documents -> study plan -> artifacts -> adaptive roadmap")
db_app = typer.Typer(help="Database management (init, migrate)")
app.add_typer(db_app, name="db")

console = Console()

STATUS_STYLES = {"available": "green", "completed": "dim", "locked": "yellow"}


class CLIContext:
    """Holds the caller id and settings for one CLI invocation."""

    def __init__(self, user: str, verbose: bool = False):
        self.user = user
        self.settings = get_settings()
        configure_logging(self.settings, level="DEBUG" if verbose else "WARNING")

    def run(self, operation: Callable[[StudyPipeline], Awaitable[T]]) -> T:
        """Run one pipeline operation in its own session and oracle client."""

        async def _runner() -> T:
            oracle = GatewayOracle.from_settings(self.settings)
            try:
                async with async_session_scope() as session:
                    return await operation(StudyPipeline(session, oracle, self.settings))
            finally:
                await oracle.close()

        try:
            return asyncio.run(_runner())
        except StudyFlowError as exc:
            rprint(f"[red]✗[/red] {exc.message} [dim]({exc.code})[/dim]")
            raise typer.Exit(code=1) from exc


def _ctx(ctx: typer.Context) -> CLIContext:
    return ctx.obj


@app.callback()
def main_callback(
    ctx: typer.Context,
    user: str = typer.Option("local", "--user", "-u", envvar="STUDYFLOW_USER", help="Caller id"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Adaptive study pipeline."""
    ctx.obj = CLIContext(user=user, verbose=verbose)


# ========================================
# Database Commands
# ========================================


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    configure_logging(get_settings(), level="INFO")
    asyncio.run(init_db())
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("migrate")
def db_migrate(
    migration_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="SQL file to execute"),
) -> None:
    """Run a raw SQL migration file."""
    configure_logging(get_settings(), level="INFO")
    run_migration(migration_file)
    rprint(f"[green]✓[/green] Applied {migration_file.name}")


# ========================================
# Pipeline Commands
# ========================================


@app.command("create-project")
def create_project(
    ctx: typer.Context,
    title: str = typer.Option("Untitled project", "--title", "-t", help="Project title"),
) -> None:
    """Create an empty project."""
    context = _ctx(ctx)

    async def op(pipeline: StudyPipeline) -> dict[str, Any]:
        return await pipeline.create_project(context.user, title)

    project = context.run(op)
    rprint(f"[green]✓[/green] Created project [bold]{project['id']}[/bold]")


@app.command()
def ingest(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
    files: list[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Extracted text files"),
    max_chars: int | None = typer.Option(None, "--max-chars", help="Maximum characters per chunk"),
    overlap: int | None = typer.Option(None, "--overlap", help="Overlap between chunks"),
) -> None:
    """Chunk text files into a project, replacing its previous chunks."""
    context = _ctx(ctx)
    documents = [{"file_name": f.name, "text": f.read_text(encoding="utf-8")} for f in files]
    chunking = {"max_chars": max_chars, "overlap": overlap}

    async def op(pipeline: StudyPipeline) -> dict[str, Any]:
        return await pipeline.ingest(project_id, context.user, documents, chunking)

    result = context.run(op)
    rprint(
        f"[green]✓[/green] {result['chunks_created']} chunks from "
        f"{result['documents'] - result['skipped_documents']} documents"
    )


@app.command()
def plan(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
) -> None:
    """Build topics, a roadmap and an optional diagnostic quiz."""
    context = _ctx(ctx)
    with console.status("Planning..."):
        result = context.run(lambda pipeline: pipeline.plan(project_id, context.user))

    _print_roadmap(result["roadmap"])
    rprint(f"Topics: {', '.join(t['title'] for t in result['topics'])}")
    if result["has_diagnostic"]:
        rprint(f"[cyan]Diagnostic quiz:[/cyan] {result['diagnostic_artifact_id']}")


@app.command()
def act(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
    action_type: str = typer.Argument(..., help="e.g. generate_quiz, explain_term, grade_open"),
    term: str | None = typer.Option(None, "--term", help="Target term"),
    selection: str | None = typer.Option(None, "--selection", help="Selected text"),
    topic_id: str | None = typer.Option(None, "--topic", help="Target topic or step id"),
    context_text: str | None = typer.Option(None, "--context", help="Free-text context"),
    answer: str | None = typer.Option(None, "--answer", help="Learner answer for grade_open"),
) -> None:
    """Generate a learning artifact or an inline note."""
    context = _ctx(ctx)
    target = {k: v for k, v in {"term": term, "selected_text": selection, "topic_id": topic_id}.items() if v}

    with console.status(f"Running {action_type}..."):
        result = context.run(
            lambda pipeline: pipeline.act(
                project_id, context.user, action_type, context=context_text, target=target, user_answer=answer
            )
        )

    payload = result["public_payload"]
    if result["artifact_id"]:
        rprint(f"[green]✓[/green] Created {payload['kind']} artifact [bold]{result['artifact_id']}[/bold]")
    else:
        console.print(Panel(payload.get("content", ""), title=payload.get("title", "Note")))
    if result["ui_hints"].get("score") is not None:
        rprint(f"Score: {result['ui_hints']['score']}")


@app.command()
def submit(
    ctx: typer.Context,
    artifact_id: str = typer.Argument(..., help="Artifact id"),
    answers: str = typer.Argument(..., help='JSON list, e.g. \'[{"block_id": "q1", "value": "a"}]\''),
) -> None:
    """Grade answers for an artifact and record an attempt."""
    context = _ctx(ctx)
    try:
        parsed = json.loads(answers)
    except json.JSONDecodeError as exc:
        rprint(f"[red]✗[/red] answers is not valid JSON: {exc}")
        raise typer.Exit(code=1) from exc

    result = context.run(lambda pipeline: pipeline.submit(artifact_id, context.user, parsed))
    score = "n/a" if result["score"] is None else result["score"]
    rprint(f"Score: [bold]{score}[/bold]  next: {result['next_step_suggestion']}")


@app.command()
def checkin(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
    hard: list[str] = typer.Option([], "--hard", help="Topic or step the learner found hard (repeatable)"),
    pace: str | None = typer.Option(None, "--pace", help="too_slow, ok or too_fast"),
    add_more: bool = typer.Option(False, "--add-more", help="Ask for more material"),
) -> None:
    """Adapt the roadmap to recent results and learner feedback."""
    context = _ctx(ctx)
    signals = {"hard_topics": hard, "pace": pace, "add_more": add_more}
    result = context.run(lambda pipeline: pipeline.checkin(project_id, context.user, signals))

    rprint(f"Average score: [bold]{result['avg_score']}[/bold]")
    rprint("Roadmap updated" if result["roadmap_updated"] else "Roadmap unchanged")
    _print_roadmap(result["roadmap"])


@app.command()
def show(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project id"),
) -> None:
    """Show project status, roadmap and artifacts."""
    context = _ctx(ctx)

    async def op(pipeline: StudyPipeline) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        project = await pipeline.get_project(project_id, context.user)
        return project, await pipeline.list_artifacts(project_id, context.user)

    project, artifacts = context.run(op)
    rprint(f"[bold]{project['title']}[/bold] ({project['status']}), {project['chunk_count']} chunks")
    if project["roadmap"]:
        _print_roadmap(project["roadmap"])

    if artifacts:
        table = Table(title="Artifacts")
        table.add_column("ID", style="dim")
        table.add_column("Kind")
        table.add_column("Title")
        for artifact in artifacts:
            table.add_row(artifact["id"], artifact["kind"], artifact["title"])
        console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    logger.info("Starting API server")
    uvicorn.run("studyflow.api.main:app", host=host or settings.api_host, port=port or settings.api_port)


def _print_roadmap(roadmap: list[dict[str, Any]]) -> None:
    table = Table(title="Roadmap")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Kind")
    table.add_column("Status")
    for position, step in enumerate(roadmap, start=1):
        style = STATUS_STYLES.get(step.get("status", ""), "")
        table.add_row(
            str(position),
            step.get("title", ""),
            step.get("artifact_type", ""),
            f"[{style}]{step.get('status', '')}[/{style}]" if style else step.get("status", ""),
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
