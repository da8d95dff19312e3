"""
Assessment Engine - Main Entry Point

CLI for serving the interview API, running an interview in the terminal,
and inspecting the question catalog and area graph.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from assessment.config import EngineSettings, load_settings
from assessment.diagnostic.models import Diagnostic, HealthStatus
from assessment.exceptions import ConfigurationError
from assessment.interview.areas import AREA_METADATA, AreaGraph
from assessment.interview.models import BLOCK_ORDER, Area, Block, Persona
from assessment.interview.questions import QuestionBank
from assessment.llm.llm_config import LLMConfig
from assessment.llm.router import ModelRouter
from assessment.observability.logging_config import configure_logging

# Load environment (override=True to ensure .env values take precedence)
root_env = Path(__file__).parent / ".env"
if root_env.exists():
    load_dotenv(root_env, override=True)
else:
    load_dotenv(override=True)

app = typer.Typer(
    name="assessment",
    help="Assessment Engine - adaptive business interview and diagnostics",
)
console = Console()

STATUS_STYLE = {
    HealthStatus.CRITICAL: "red",
    HealthStatus.ATTENTION: "yellow",
    HealthStatus.GOOD: "green",
    HealthStatus.EXCELLENT: "bold green",
}


def _get_settings(config: Optional[Path]) -> EngineSettings:
    """Load settings, with a friendly error on failure."""
    try:
        return load_settings(config)
    except ConfigurationError as e:
        console.print(Panel(
            f"[red]Invalid configuration:[/] {e}\n\n"
            f"[dim]{json.dumps(e.details, default=str)[:500]}[/]",
            title="⚠ Configuration Error",
            border_style="red",
        ))
        raise typer.Exit(code=1)


def _env_key(var_name: str) -> str | None:
    value = os.environ.get(var_name, "").strip()
    return value or None


def _build_router(settings: EngineSettings, offline: bool) -> Optional[ModelRouter]:
    """
    Model router from the API keys in the environment.

    Returns None when offline or when no provider is configured; the
    engine then uses its deterministic fallbacks.
    """
    if offline:
        return None

    anthropic_client = None
    openai_client = None
    if _env_key("ANTHROPIC_API_KEY"):
        from anthropic import Anthropic
        anthropic_client = Anthropic()
    if _env_key("OPENAI_API_KEY"):
        from openai import OpenAI
        openai_client = OpenAI()

    router = ModelRouter(
        anthropic_client=anthropic_client,
        openai_client=openai_client,
        ollama_base_url=_env_key("OLLAMA_BASE_URL"),
        config=LLMConfig.from_settings(settings.orchestration.models),
    )
    if not router.has_provider:
        console.print(
            "[yellow]No ANTHROPIC_API_KEY or OPENAI_API_KEY set; "
            "running with deterministic fallbacks.[/]"
        )
        return None
    return router


def _build_engine(config: Optional[Path], offline: bool):
    from assessment.engine import InterviewEngine

    settings = _get_settings(config)
    configure_logging(level=settings.log_level)
    return InterviewEngine(settings, model_router=_build_router(settings, offline))


def _print_diagnostic(diagnostic: Diagnostic) -> None:
    style = STATUS_STYLE[diagnostic.overall_status]
    console.print(Panel(
        f"[{style}]Overall: {diagnostic.overall_score}/100 "
        f"({diagnostic.overall_status.value})[/{style}]\n"
        f"Strongest area: {diagnostic.detected_area.value if diagnostic.detected_area else '-'}\n"
        f"Risk areas: {', '.join(a.value for a in diagnostic.risk_areas)}\n"
        f"Completeness: {diagnostic.completeness_score}% "
        f"(confidence {diagnostic.confidence_tier.value})\n\n"
        f"{diagnostic.executive_summary}",
        title=f"Diagnostic {diagnostic.id}",
        border_style=style,
    ))

    table = Table(title="Area Health")
    table.add_column("Area", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    table.add_column("Source", style="dim")
    for s in diagnostic.health_scores:
        st = STATUS_STYLE[s.status]
        table.add_row(
            f"{AREA_METADATA[s.area].icon} {AREA_METADATA[s.area].name}",
            str(s.score),
            f"[{st}]{s.status.value}[/{st}]",
            s.source,
        )
    console.print(table)

    if diagnostic.recommendations:
        rec_table = Table(title="Recommendations")
        rec_table.add_column("Priority", style="bold")
        rec_table.add_column("Area", style="cyan")
        rec_table.add_column("Title", style="white")
        for r in diagnostic.recommendations:
            rec_table.add_row(r.priority.value, r.area.value, r.title)
        console.print(rec_table)

    if diagnostic.gaps:
        console.print(f"[dim]Gaps: {', '.join(diagnostic.gaps)}[/]")
    if diagnostic.llm_skipped_reason:
        console.print(f"[yellow]Model step skipped: {diagnostic.llm_skipped_reason}[/]")


# =========================================================================
# Commands
# =========================================================================


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: from config)"),
    port: Optional[int] = typer.Option(None, help="Port (default: from config)"),
    config: Optional[Path] = typer.Option(None, help="Path to engine.yaml"),
    offline: bool = typer.Option(False, help="Never call a model"),
):
    """Serve the interview REST API."""
    import uvicorn

    from assessment.api.server import create_api_app

    engine = _build_engine(config, offline)
    api = engine.settings.api
    console.print(Panel(
        f"[cyan]Assessment Engine API[/]\n"
        f"Listening on http://{host or api.host}:{port or api.port}\n"
        f"Docs: /api/docs\n"
        f"Models: {'on' if engine.caller.has_model else 'off (deterministic fallbacks)'}",
        title="Serve",
    ))
    uvicorn.run(
        create_api_app(engine),
        host=host or api.host,
        port=port or api.port,
        log_config=None,
    )


@app.command()
def interview(
    config: Optional[Path] = typer.Option(None, help="Path to engine.yaml"),
    persona: Optional[Persona] = typer.Option(None, help="Who is answering"),
    offline: bool = typer.Option(False, help="Never call a model"),
    override: bool = typer.Option(False, help="Bypass the lead-value gate"),
):
    """Run an interactive interview in the terminal."""

    async def _run():
        engine = _build_engine(config, offline)
        session_id = engine.create_session({"source": "cli"}, persona)
        console.print(Panel(
            f"Session [cyan]{session_id}[/]\nAnswer each question; "
            f"press Ctrl+C to stop.",
            title="Interview",
        ))

        block: Optional[str] = None
        while True:
            step = await engine.next_question(session_id)
            if step.should_finish or step.question is None:
                break

            current = step.routing_metadata["current_block"]
            if current != block:
                block = current
                console.print(f"\n[bold magenta]── {block} ──[/]")

            q = step.question
            prefix = "[yellow](follow-up)[/] " if q.get("is_follow_up") else ""
            console.print(f"\n{prefix}[bold]{q['text']}[/]")
            for i, option in enumerate(q.get("options") or [], 1):
                console.print(f"  [dim]{i}.[/] {option}")

            answer = Prompt.ask("›", default="")
            options = q.get("options") or []
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                answer = options[int(answer) - 1]

            result = await engine.submit_answer(session_id, q["id"], answer)
            if result.extraction_error:
                console.print(f"  [yellow]Could not read that: {result.extraction_error}[/]")
            console.print(f"  [dim]completeness {result.completeness_score}%[/]")

        stats = engine.get_session_stats(session_id)
        console.print(
            f"\n[green]Interview finished[/] after {stats['total_answers']} answers "
            f"({stats['completeness_score']}% complete)."
        )
        if not Confirm.ask("Generate the diagnostic?", default=True):
            return

        diagnostic = await engine.complete(session_id, override=override)
        _print_diagnostic(diagnostic)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interview aborted.[/]")
        raise typer.Exit(code=130)


@app.command()
def questions(
    block: Optional[Block] = typer.Option(None, help="Only this block"),
    area: Optional[Area] = typer.Option(None, help="Only this area"),
):
    """List the question catalog."""
    bank = QuestionBank()
    table = Table(title=f"Question Catalog ({len(bank)} questions)")
    table.add_column("ID", style="cyan")
    table.add_column("Block", style="magenta")
    table.add_column("Area", style="green")
    table.add_column("Question", style="white")
    table.add_column("Essential field", style="dim")

    for b in BLOCK_ORDER:
        if block is not None and b != block:
            continue
        for q in bank.get_questions_by_block(b):
            if area is not None and q.area != area:
                continue
            table.add_row(
                q.id,
                b.value,
                q.area.value if q.area else "",
                q.text,
                q.essential_field,
            )
    console.print(table)


@app.command()
def graph(
    area: Optional[Area] = typer.Option(None, help="Show risk-scan suggestions for this area"),
):
    """Show the area relationship graph."""
    g = AreaGraph()
    table = Table(title="Area Relationships")
    table.add_column("Area", style="cyan")
    table.add_column("Criticality", justify="right")
    table.add_column("Upstream", style="white")
    table.add_column("Downstream", style="white")
    table.add_column("Critical", style="red")

    for a in g.areas:
        table.add_row(
            f"{AREA_METADATA[a].icon} {a.value}",
            f"{g.criticality(a):.1f}",
            ", ".join(x.value for x in g.get_upstream_areas(a)),
            ", ".join(x.value for x in g.get_downstream_areas(a)),
            ", ".join(x.value for x in g.get_critical_areas(a)),
        )
    console.print(table)

    if area is not None:
        suggested = g.suggest_risk_scan_areas(area)
        scores = Table(title=f"Risk-scan candidates for {area.value}")
        scores.add_column("#", style="dim")
        scores.add_column("Area", style="cyan")
        scores.add_column("Relationship", justify="right")
        scores.add_column("Distance", justify="right")
        for i, other in enumerate(suggested, 1):
            scores.add_row(
                str(i),
                other.value,
                f"{g.calculate_relationship_score(area, other):.2f}",
                str(g.calculate_area_distance(area, other)),
            )
        console.print(scores)


if __name__ == "__main__":
    app()
