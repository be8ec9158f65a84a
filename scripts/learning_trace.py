# ABOUTME: Provides an operator CLI over the learning core: ability, collocations, allocation, bottlenecks.
# ABOUTME: Reads CSV/YAML/text inputs and renders results as rich tables.

from pathlib import Path
from typing import Optional

import pandas as pd
import typer
import yaml
from rich.console import Console
from rich.table import Table

from src.allocation.allocator import allocate_time
from src.assessment.bottleneck import analyze_bottleneck, summarize_bottleneck
from src.common.config import EngineConfig, load_engine_config
from src.common.errors import LearningCoreError, NoCandidate
from src.common.log import configure_logging
from src.common.schemas import CurriculumGoal, ItemParameter
from src.irt.calibration import calibrate_items, response_matrix
from src.irt.estimation import estimate_theta_eap, estimate_theta_mle
from src.lexical.pmi import LexicalRelationIndex

console = Console()
app = typer.Typer(help="Inspect ability estimates, collocations, time allocation, and bottlenecks.")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", help="Engine config YAML (defaults when omitted)."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for library messages."),
) -> None:
    configure_logging(log_level)
    ctx.obj = load_engine_config(config)


def _engine_config(ctx: typer.Context) -> EngineConfig:
    return ctx.obj if isinstance(ctx.obj, EngineConfig) else EngineConfig.default()


def _load_items(path: Path):
    frame = pd.read_csv(path)
    if "item_id" not in frame.columns or "difficulty" not in frame.columns:
        console.print(f"[red]Items file {path} needs item_id and difficulty columns[/red]")
        raise typer.Exit(code=1)
    items = {}
    for row in frame.itertuples(index=False):
        items[str(row.item_id)] = ItemParameter(
            item_id=str(row.item_id),
            difficulty=float(row.difficulty),
            discrimination=float(getattr(row, "discrimination", 1.0)),
            guessing=float(getattr(row, "guessing", 0.0)),
        )
    return items


@app.command()
def estimate(
    ctx: typer.Context,
    responses: Path = typer.Option(..., "--responses", help="CSV with learner_id, object_id, correct."),
    items: Path = typer.Option(..., "--items", help="CSV with item_id, difficulty[, discrimination, guessing]."),
    method: str = typer.Option("eap", "--method", help="eap or mle."),
) -> None:
    """Estimate theta for every learner in a response log."""

    config = _engine_config(ctx)
    item_params = _load_items(items)
    log = pd.read_csv(responses)

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Learner", "Theta", "SE", "Responses", "Converged"):
        table.add_column(column)

    for learner_id, rows in log.groupby("learner_id", sort=True):
        pairs = [(item_params[str(o)], bool(c)) for o, c in zip(rows["object_id"], rows["correct"]) if str(o) in item_params]
        if method == "mle":
            result = estimate_theta_mle(pairs, config.irt)
        elif method == "eap":
            result = estimate_theta_eap(pairs, config.irt)
        else:
            raise typer.BadParameter(f"Unsupported method '{method}'. Expected eap or mle.")
        table.add_row(
            str(learner_id),
            f"{result.theta:+.3f}",
            f"{result.standard_error:.3f}",
            str(len(pairs)),
            "yes" if result.converged else "[yellow]no[/yellow]",
        )

    console.rule(f"[bold blue]Ability estimates ({method.upper()})[/bold blue]")
    console.print(table)


@app.command()
def calibrate(
    ctx: typer.Context,
    responses: Path = typer.Option(..., "--responses", help="CSV with learner_id, object_id, correct."),
    output: Optional[Path] = typer.Option(None, "--output", help="Optional CSV to write calibrated items to."),
) -> None:
    """Calibrate item parameters from a pilot response log."""

    config = _engine_config(ctx)
    matrix, _, item_ids = response_matrix(pd.read_csv(responses))
    result = calibrate_items(matrix, item_ids, config.calibration)

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Item", "Difficulty", "Discrimination", "Guessing"):
        table.add_column(column)
    for item in result.items:
        table.add_row(item.item_id, f"{item.difficulty:+.3f}", f"{item.discrimination:.3f}", f"{item.guessing:.2f}")

    status = "converged" if result.converged else "[yellow]not converged[/yellow]"
    console.rule(f"[bold blue]Calibration ({result.iterations} iterations, {status})[/bold blue]")
    console.print(table)
    if output is not None:
        pd.DataFrame([vars(item) for item in result.items]).to_csv(output, index=False)
        console.print(f"[bold]Saved {len(result.items)} items to {output}[/bold]")


@app.command()
def collocations(
    ctx: typer.Context,
    corpus: Path = typer.Option(..., "--corpus", help="Plain-text corpus; whitespace-tokenised."),
    word: str = typer.Option(..., "--word", help="Word to list collocates for."),
    top_k: int = typer.Option(10, "--top-k", help="Number of collocates to show."),
) -> None:
    """List the strongest significant collocates of a word."""

    config = _engine_config(ctx)
    index = LexicalRelationIndex.build(corpus.read_text().split(), config.lexical)
    found = index.collocations(word, top_k=top_k)
    if not found:
        console.print(f"[yellow]No significant collocates for '{word}' in {index.total_words:,} tokens[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Collocate", "Count", "PMI", "NPMI", "LLR"):
        table.add_column(column)
    for relation in found:
        other = relation.word_b if relation.word_a == word.lower() else relation.word_a
        table.add_row(
            other,
            str(relation.cooccurrence),
            f"{relation.pmi:.2f}",
            f"{relation.npmi:.2f}",
            f"{relation.significance:.1f}",
        )
    console.rule(f"[bold blue]Collocates of '{word}'[/bold blue]")
    console.print(table)


@app.command()
def allocate(
    ctx: typer.Context,
    goals: Path = typer.Option(..., "--goals", help="YAML list of goals (goal_id, target_theta, current_theta, deadline_days, ...)."),
    budget: float = typer.Option(60.0, "--budget", help="Minutes available."),
    policy: str = typer.Option("balanced", "--policy", help="balanced, deadline_focused, progress_focused, synergy_focused, custom."),
) -> None:
    """Split a practice budget across curriculum goals."""

    config = _engine_config(ctx)
    with open(goals) as f:
        raw_goals = yaml.safe_load(f) or []
    parsed = [
        CurriculumGoal(**{**g, "object_ids": frozenset(g.get("object_ids", []))})
        for g in raw_goals
    ]
    try:
        plan = allocate_time(parsed, budget, policy, config.allocation)
    except LearningCoreError as exc:
        console.print(f"[red]Allocation failed: {exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(plan, NoCandidate):
        console.print(f"[yellow]Nothing to allocate: {plan.reason}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Goal", "Share", "Minutes", "Progress", "Risk"):
        table.add_column(column)
    for a in plan.allocations:
        table.add_row(
            a.goal_id,
            f"{a.share:.1%}",
            f"{a.minutes:.1f}",
            f"{a.expected_progress:.3f}",
            f"{a.risk:.2f}" if a.active else "-",
        )
    console.rule(f"[bold blue]Allocation ({plan.policy.value})[/bold blue]")
    console.print(table)
    console.print(f"Frontier: {plan.frontier_size} of {plan.candidates_evaluated} candidates")


@app.command()
def bottleneck(
    ctx: typer.Context,
    history: Path = typer.Option(..., "--history", help="CSV with component, correct, timestamp[, session_id, content, error_kind]."),
) -> None:
    """Diagnose the linguistic component that blocks progress."""

    config = _engine_config(ctx)
    analysis = analyze_bottleneck(pd.read_csv(history), config.bottleneck)

    console.rule("[bold blue]Bottleneck analysis[/bold blue]")
    console.print(f"[bold]Summary:[/] {summarize_bottleneck(analysis)}")
    console.print(f"[bold]Confidence:[/] {analysis.confidence:.2f}")
    if analysis.evidence:
        table = Table(show_header=True, header_style="bold magenta")
        for column in ("Component", "Error rate", "Responses", "Improvement", "Patterns"):
            table.add_column(column)
        for ev in analysis.evidence:
            table.add_row(
                ev.component.value,
                f"{ev.error_rate:.0%}",
                str(ev.responses),
                f"{ev.improvement:+.2f}",
                ", ".join(ev.error_patterns) or "-",
            )
        console.print(table)
    console.print(f"→ {analysis.recommendation}")


if __name__ == "__main__":
    app()
