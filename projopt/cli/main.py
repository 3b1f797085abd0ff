"""
projopt CLI - analyze and optimize projections and queries

Usage:
    projopt analyze <projection> [options]
    projopt cost <projection> [options]
    projopt optimize <projection> [--context FILE] [options]
    projopt optimize-query <query> [--context FILE] [--timeout N] [options]

<projection>, <query> and --context accept a JSON file path or inline JSON.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from projopt import __version__
from projopt.cli.formatters import get_formatter
from projopt.core.analysis import analyze
from projopt.core.context import OptimizationContext
from projopt.core.cost import HeuristicQueryCostModel, estimate_projection_cost
from projopt.core.descriptor import to_descriptor, validate_descriptor
from projopt.core.errors import OptimizerError
from projopt.optimizers.base import OptimizationResult
from projopt.optimizers.projection import OptimizerConfig, ProjectionOptimizer
from projopt.optimizers.query import QueryOptimizer, QueryOptimizerConfig


def load_json(value: str) -> Any:
    """
    Read JSON from a file path or an inline string

    Raises:
        click.BadParameter: If the value is neither
    """
    try:
        is_file = Path(value).is_file()
    except (OSError, ValueError):
        # Inline JSON longer than a path may be
        is_file = False

    try:
        if is_file:
            return json.loads(Path(value).read_text())
        return json.loads(value)
    except (OSError, json.JSONDecodeError) as e:
        raise click.BadParameter(f"not a JSON file or inline JSON: {e}") from e


def _context(context: Optional[str], threshold: Optional[float]) -> OptimizationContext:
    options: Dict[str, Any] = {}
    if context:
        raw = load_json(context)
        if not isinstance(raw, dict):
            raise click.BadParameter("context must be a JSON object", param_hint="--context")
        options.update(raw)
    if threshold is not None:
        options["performance_threshold"] = threshold
    return OptimizationContext.from_dict(options)


def _step_rows(result: OptimizationResult, ledger) -> List[Dict[str, Any]]:
    rows = []
    for step in result.steps:
        verification = ledger.get_verification(step.id)
        rows.append(
            {
                "sequence": step.sequence,
                "strategy": step.strategy_name,
                "status": "rolled back" if step.rolled_back else "accepted",
                "improvement_pct": verification.improvement if verification else None,
                "reason": verification.reason if verification else None,
            }
        )
    return rows


def _emit(rows: List[Dict[str, Any]], format: str, no_color: bool, **kwargs) -> None:
    formatter = get_formatter(format)
    click.echo(formatter.format(rows, no_color=no_color, **kwargs), nl=False)


format_option = click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format (default: table)",
)
no_color_option = click.option("--no-color", is_flag=True, help="Disable colored output")
context_option = click.option(
    "--context",
    "-c",
    type=str,
    default=None,
    help="Context options as a JSON file or inline JSON",
)


@click.group()
@click.version_option(version=__version__, prog_name="projopt")
@click.option("--verbose", "-v", is_flag=True, help="Log optimizer decisions to stderr")
def cli(verbose: bool):
    """
    projopt - rewrite-and-verify optimizer for projections and queries
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command(name="analyze")
@click.argument("projection", type=str)
@context_option
@format_option
@no_color_option
def analyze_command(projection: str, context: Optional[str], format: str, no_color: bool):
    """
    Show structure, complexity and opportunities of a projection

    \b
    Examples:
        projopt analyze '["id", "name", "-password"]'
        projopt analyze projection.json --format json
    """
    try:
        ctx = _context(context, None)
        descriptor = validate_descriptor(to_descriptor(load_json(projection)))
        analysis = analyze(descriptor, ctx)
    except OptimizerError as e:
        raise click.ClickException(str(e)) from e

    complexity = analysis.complexity
    rows = [
        {
            "type": analysis.type,
            "fields": analysis.fields.count,
            "included": analysis.fields.included_count,
            "nested": analysis.fields.nested_count,
            "depth": complexity.nested_depth,
            "total_fields": complexity.total_field_count,
            "score": complexity.complexity_score,
            "level": complexity.complexity_level,
            "opportunities": [o.type for o in analysis.optimization_opportunities],
        }
    ]
    _emit(rows, format, no_color, title="Projection analysis")


@cli.command(name="cost")
@click.argument("projection", type=str)
@context_option
@format_option
@no_color_option
def cost_command(projection: str, context: Optional[str], format: str, no_color: bool):
    """
    Estimate the cost of a projection
    """
    try:
        ctx = _context(context, None)
        descriptor = validate_descriptor(to_descriptor(load_json(projection)))
        estimate = estimate_projection_cost(descriptor, ctx)
    except OptimizerError as e:
        raise click.ClickException(str(e)) from e

    _emit([estimate.to_dict()], format, no_color, title="Cost estimate")


@cli.command(name="optimize")
@click.argument("projection", type=str)
@context_option
@click.option("--threshold", "-t", type=float, default=None, help="Minimum improvement in percent")
@click.option("--eager-limit", type=int, default=10, help="Fields loaded eagerly (default: 10)")
@format_option
@no_color_option
def optimize_command(
    projection: str,
    context: Optional[str],
    threshold: Optional[float],
    eager_limit: int,
    format: str,
    no_color: bool,
):
    """
    Optimize a projection and show every attempted step

    \b
    Examples:
        projopt optimize projection.json -c '{"supportsLazyLoading": true}'
        projopt optimize projection.json -t 10 --format json
    """
    optimizer = ProjectionOptimizer(OptimizerConfig(eager_load_limit=eager_limit))
    try:
        result = optimizer.optimize(load_json(projection), _context(context, threshold))
    except OptimizerError as e:
        raise click.ClickException(str(e)) from e

    extra = {
        "summary": result.get_summary(),
        "optimized": result.optimized.describe(),
    }
    _emit(_step_rows(result, optimizer.ledger), format, no_color, title="Steps", extra=extra)


@cli.command(name="optimize-query")
@click.argument("query", type=str)
@context_option
@click.option("--threshold", "-t", type=float, default=None, help="Minimum improvement in percent")
@click.option("--timeout", type=float, default=None, help="Seconds allowed per cost estimate")
@format_option
@no_color_option
def optimize_query_command(
    query: str,
    context: Optional[str],
    threshold: Optional[float],
    timeout: Optional[float],
    format: str,
    no_color: bool,
):
    """
    Optimize a structured query with the built-in heuristic cost model

    \b
    Example:
        projopt optimize-query '{"source": "orders", "filter": {"status": "open"}}'
    """
    optimizer = QueryOptimizer(QueryOptimizerConfig(), cost_model_engine=HeuristicQueryCostModel())
    try:
        result = optimizer.optimize_blocking(
            load_json(query), _context(context, threshold), timeout=timeout
        )
    except OptimizerError as e:
        raise click.ClickException(str(e)) from e

    extra = {
        "summary": result.get_summary(),
        "optimized": result.optimized.to_dict(),
    }
    _emit(_step_rows(result, optimizer.ledger), format, no_color, title="Steps", extra=extra)


def main():
    cli()


if __name__ == "__main__":
    main()
