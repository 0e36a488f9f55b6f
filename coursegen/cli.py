"""Command-line interface for the course generation pipeline."""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from coursegen.config import get_settings
from coursegen.documents import DocumentExtractionError, load_documents
from coursegen.llm import OllamaInvoker, get_llm_settings
from coursegen.models import (
    Difficulty,
    FullPipelineResult,
    PipelineConfig,
    PipelineInput,
    Stage,
    StageRegeneration,
)
from coursegen.pipeline import (
    parse_pipeline,
    parse_stage_a,
    parse_stage_b,
    regenerate_stage_a,
    regenerate_stage_b,
    regenerate_stage_c,
    run_full_pipeline,
)

app = typer.Typer(
    name="coursegen",
    help="Course Generator - Build a course, quiz and explanations from source documents",
    add_completion=False,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    settings = get_settings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")

    renderer = structlog.processors.JSONRenderer() if settings.log_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _write_json(path: Path, payload: str) -> None:
    path.write_text(payload, encoding="utf-8")
    console.print(f"\n[green]Saved to:[/green] {path}")


@app.command()
def generate(
    files: list[Path] = typer.Argument(
        ...,
        help="Source documents (.pdf, .txt, .md)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    num_questions: Optional[int] = typer.Option(
        None,
        "--num-questions",
        "-n",
        help="Number of quiz questions (default: derived from objectives)",
    ),
    difficulty: Optional[Difficulty] = typer.Option(
        None,
        "--difficulty",
        "-d",
        help="Target course difficulty",
    ),
    pass_mark: Optional[int] = typer.Option(
        None,
        "--pass-mark",
        help="Quiz pass mark in percent",
    ),
    output: Path = typer.Option(
        Path("course_result.json"),
        "--output",
        "-o",
        help="Output file for the full pipeline result",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Generate a course, quiz and explanations from source documents."""
    _configure_logging(verbose)

    console.print(
        Panel.fit(
            "[bold blue]Course Generator[/bold blue]\n"
            "Architect -> Inspector -> Teacher",
            border_style="blue",
        )
    )

    try:
        documents = load_documents(files)
    except DocumentExtractionError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)

    if not documents:
        console.print("\n[red]Error:[/red] No readable source documents")
        sys.exit(1)

    config = get_settings().pipeline_config(
        num_questions=num_questions,
        difficulty=difficulty,
        pass_mark=pass_mark,
    )
    console.print(f"[dim]Documents:[/dim] {len(documents)}  [dim]Prompt version:[/dim] {config.prompt_version}\n")
    console.print("[yellow]Running pipeline... (this may take a few minutes)[/yellow]\n")

    result = run_full_pipeline(PipelineInput(documents=documents, config=config))

    _write_json(output, result.model_dump_json(by_alias=True, indent=2))
    _display_summary(result)

    if not result.success:
        console.print(f"\n[red]Failed:[/red] {result.user_message}")
        sys.exit(1)


@app.command()
def parse(
    raw_a: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw Architect output"),
    raw_b: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw Inspector output"),
    raw_c: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw Teacher output"),
    num_questions: Optional[int] = typer.Option(None, "--num-questions", "-n", help="Expected question count"),
) -> None:
    """Re-parse saved raw stage outputs without calling the model."""
    config = get_settings().pipeline_config(num_questions=num_questions)
    parsed = parse_pipeline(
        raw_a.read_text(encoding="utf-8"),
        raw_b.read_text(encoding="utf-8"),
        raw_c.read_text(encoding="utf-8"),
        config,
    )

    table = Table(title="Diagnostics")
    table.add_column("Stage")
    table.add_column("Severity")
    table.add_column("Code", no_wrap=True)
    table.add_column("Message")
    for d in parsed.diagnostics:
        style = "red" if d.is_error else "yellow"
        table.add_row(d.stage.value, f"[{style}]{d.severity.value}[/{style}]", d.code, d.message)
    console.print(table)

    for stage, repairs in parsed.repairs.items():
        console.print(f"[dim]Stage {stage.value} repairs:[/dim] {', '.join(repairs)}")

    if parsed.quiz is not None:
        console.print(f"[dim]Questions:[/dim] {len(parsed.quiz.questions)}")

    if not parsed.complete:
        console.print("\n[red]Parsing failed[/red]")
        sys.exit(1)
    console.print("\n[green]Parsing complete[/green]")


@app.command()
def regenerate(
    stage: Stage = typer.Argument(..., help="Stage to regenerate (A, B or C)"),
    result_json: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved pipeline result"),
    source: Optional[list[Path]] = typer.Option(
        None,
        "--source",
        "-s",
        help="Source documents (required for stage A)",
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file for the regenerated stage"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Regenerate one stage of a saved run from its upstream raw outputs."""
    _configure_logging(verbose)

    saved = FullPipelineResult.model_validate_json(result_json.read_text(encoding="utf-8"))
    config = get_settings().pipeline_config()
    if saved.diagnostics:
        config = config.model_copy(update={"prompt_version": saved.diagnostics.prompt_version})

    regeneration = _regenerate(stage, saved, config, source or [])

    if output is None:
        output = result_json.with_name(f"{result_json.stem}_stage_{stage.value.lower()}.json")
    _write_json(output, regeneration.model_dump_json(by_alias=True, indent=2))

    for d in regeneration.diagnostics:
        style = "red" if d.is_error else "yellow"
        console.print(f"[{style}]{d.severity.value}[/{style}] {d.code}: {d.message}")

    if not regeneration.success:
        console.print(f"\n[red]Failed:[/red] {regeneration.error.user_message}")
        sys.exit(1)
    console.print(f"\n[green]Stage {stage.value} regenerated[/green] in {regeneration.run.duration_ms} ms")


def _saved_output(saved: FullPipelineResult, stage: Stage) -> str:
    raw = saved.raw_outputs.for_stage(stage).output
    if not raw.strip():
        console.print(f"[red]Error:[/red] saved run has no Stage {stage.value} output")
        sys.exit(1)
    return raw


def _regenerate(
    stage: Stage,
    saved: FullPipelineResult,
    config: PipelineConfig,
    source: list[Path],
) -> StageRegeneration:
    """Rebuild upstream artifacts from saved raw outputs and re-run one stage."""
    if stage == Stage.A:
        if not source:
            console.print("[red]Error:[/red] --source is required to regenerate stage A")
            sys.exit(1)
        try:
            documents = load_documents(source)
        except DocumentExtractionError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        return regenerate_stage_a(PipelineInput(documents=documents, config=config), OllamaInvoker())

    upstream_a = parse_stage_a(_saved_output(saved, Stage.A), config)
    if not upstream_a.success:
        console.print(f"[red]Error:[/red] saved Stage A output is unusable: {upstream_a.error_message()}")
        sys.exit(1)

    if stage == Stage.B:
        return regenerate_stage_b(upstream_a.course_markdown, upstream_a.course_meta, OllamaInvoker(), config)

    upstream_b = parse_stage_b(_saved_output(saved, Stage.B), config, upstream_a.course_meta)
    if not upstream_b.success:
        console.print(f"[red]Error:[/red] saved Stage B output is unusable: {upstream_b.error_message()}")
        sys.exit(1)
    return regenerate_stage_c(upstream_a.course_markdown, upstream_b.quiz, OllamaInvoker(), config)


@app.command()
def info() -> None:
    """Display configuration."""
    from coursegen import __version__

    settings = get_settings()
    llm_settings = get_llm_settings()

    console.print(Panel.fit("[bold blue]Course Generator[/bold blue]", border_style="blue"))

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Prompt Version", settings.prompt_version)
    table.add_row("LLM Model", llm_settings.model_name)
    table.add_row("Fallback Model", llm_settings.fallback_model_name or "-")
    table.add_row("Ollama URL", llm_settings.ollama_base_url)
    table.add_row("Temperature", str(llm_settings.temperature))
    table.add_row("Context Window", str(llm_settings.num_ctx))
    table.add_row("Max Input Chars", str(settings.max_input_chars))
    table.add_row("Max Retries", str(settings.max_retries))

    console.print(table)


def _display_summary(result: FullPipelineResult) -> None:
    """Display a summary of the run."""
    console.print("\n[bold]Run Summary[/bold]")
    console.print("-" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")

    table.add_row("Status", result.status.value)
    table.add_row("Path", " -> ".join(s.value for s in result.status_history))

    if result.result is not None:
        course = result.result
        table.add_row("Title", course.course_meta.title)
        table.add_row("Objectives", str(len(course.course_meta.objectives)))
        table.add_row("Questions", str(len(course.quiz.questions)))
        table.add_row("Explanations", str(len(course.explanations.explanations)))

    diagnostics = result.diagnostics
    if diagnostics is not None:
        table.add_row("Warnings", str(len(diagnostics.warnings)))
        table.add_row("Errors", str(len(diagnostics.errors)))
        for stage, stage_diag in diagnostics.stages.items():
            table.add_row(f"Stage {stage.value}", f"{stage_diag.duration_ms} ms, {stage_diag.raw_char_count} chars")

    console.print(table)

    if diagnostics is not None and diagnostics.coverage.objectives_without_questions:
        uncovered = ", ".join(str(i) for i in diagnostics.coverage.objectives_without_questions)
        console.print(f"\n[yellow]Objectives without questions:[/yellow] {uncovered}")

    for stage, error in result.stage_errors.items():
        console.print(f"[red]Stage {stage.value} ({error.category.value}):[/red] {error.message}")


if __name__ == "__main__":
    app()
