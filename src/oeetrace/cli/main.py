from __future__ import annotations

import json
from contextlib import nullcontext
from pathlib import Path
from typing import Any

import click
import typer
from rich.console import Console
from rich.table import Table

from oeetrace import __version__
from oeetrace.aggregation import (
    AggregationMethod,
    MachineOeeData,
    aggregate_system,
    aggregation_dataframe,
    compare_aggregation_methods,
)
from oeetrace.cli.messages import MESSAGES, label, render
from oeetrace.costing.economics import EconomicAnalysis
from oeetrace.engine import calculate as run_calculation
from oeetrace.engine import calculate_full
from oeetrace.evaluation.leverage import analyze_leverage, leverage_dataframe
from oeetrace.evaluation.loss_tree import LossTree, loss_tree_dataframe
from oeetrace.evaluation.sensitivity import SensitivityAnalysis
from oeetrace.evaluation.temporal_scrap import TemporalScrapAnalysis
from oeetrace.results import OeeResult
from oeetrace.scenario.contract.thresholds import THRESHOLD_PRESETS, format_presets
from oeetrace.scenario.io import load_economic_parameters, load_input, load_machines
from oeetrace.telemetry import CalculationRunLog
from oeetrace.validation.issues import Severity, ValidationResult

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
PRESET_CHOICE = click.Choice(sorted(THRESHOLD_PRESETS), case_sensitive=False)
METHOD_CHOICE = click.Choice([method.value for method in AggregationMethod], case_sensitive=False)
SEVERITY_STYLE = {Severity.FATAL: "red", Severity.WARNING: "yellow", Severity.INFO: "cyan"}


def _fail(exc: Exception) -> typer.Exit:
    console.print(f"[red]Cannot calculate:[/red] {exc}")
    return typer.Exit(1)


def _validation_counts(validation: ValidationResult) -> dict[str, int]:
    return {severity.value: len(validation.by_severity(severity)) for severity in Severity}


def _print_metrics(result: OeeResult) -> None:
    table = Table(title="OEE metrics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_column("Confidence")
    core = result.core_metrics
    extended = result.extended_metrics
    metrics = [core.oee, core.availability, core.performance, core.quality]
    metrics += [
        metric
        for metric in (
            extended.teep,
            extended.utilization,
            extended.mtbf,
            extended.mttr,
            extended.scrap_rate,
            extended.rework_rate,
            extended.net_operating_time,
        )
        if metric is not None
    ]
    for metric in metrics:
        if metric.unit_key == "units.fraction":
            value = f"{metric.value:.2%}"
        else:
            value = f"{metric.value:,.1f} s"
        table.add_row(label(metric.name_key), value, metric.confidence.value)
    console.print(table)


def _print_issues(result: OeeResult) -> None:
    if not result.validation.issues and not result.ledger.warnings:
        console.print("[green]No validation issues or ledger warnings.[/green]")
        return
    table = Table(title="Validation issues and ledger warnings")
    table.add_column("Severity")
    table.add_column("Code")
    table.add_column("Message")
    for warning in result.ledger.warnings:
        style = SEVERITY_STYLE[warning.severity]
        table.add_row(
            f"[{style}]{warning.severity.value}[/{style}]",
            warning.code,
            render(warning.message_key, warning.params),
        )
    console.print(table)


def _print_tree(tree: LossTree) -> None:
    table = Table(title="Loss tree (attribution of planned time)")
    table.add_column("Category")
    table.add_column("Seconds", justify="right")
    table.add_column("% planned", justify="right")
    table.add_column("Source")
    for node in tree.iter_nodes():
        indent = "  " * max(len(node.path) - 1, 0)
        table.add_row(
            f"{indent}{label(node.category_key)}",
            f"{node.duration:,.1f}",
            f"{node.percentage_of_planned:.1%}",
            node.source.value,
        )
    console.print(table)


def _print_economics(analysis: EconomicAnalysis) -> None:
    table = Table(title=f"Economic impact estimates ({analysis.currency})")
    table.add_column("Impact")
    table.add_column("Low", justify="right")
    table.add_column("Central", justify="right")
    table.add_column("High", justify="right")
    for impact in (
        analysis.throughput_loss,
        analysis.material_waste,
        analysis.rework_cost,
        analysis.opportunity_cost,
        analysis.total_impact,
    ):
        estimate = impact.estimate
        table.add_row(
            label(impact.description_key),
            f"{estimate.low:,.2f}",
            f"{estimate.central:,.2f}",
            f"{estimate.high:,.2f}",
        )
    console.print(table)
    for note in analysis.notes:
        console.print(f"[cyan]note:[/cyan] {render(note.message_key, note.params)}")
    console.print(f"[dim]{render(analysis.disclaimer_key)}[/dim]")


def _print_sensitivity(analysis: SensitivityAnalysis) -> None:
    table = Table(title=f"Sensitivity (±{analysis.variation_percent:g}%)")
    table.add_column("Input")
    table.add_column("Baseline", justify="right")
    table.add_column("OEE +v", justify="right")
    table.add_column("OEE -v", justify="right")
    table.add_column("Gain (pts)", justify="right")
    table.add_column("Impact")
    for item in analysis.results:
        table.add_row(
            label(item.parameter_key),
            f"{item.baseline_value:,.2f}",
            f"{item.oee_at_increase:.2%}",
            f"{item.oee_at_decrease:.2%}",
            f"{item.oee_delta * 100:.2f}",
            item.impact_level.value,
        )
    console.print(table)


def _print_temporal(analysis: TemporalScrapAnalysis) -> None:
    console.print(
        f"Startup window {analysis.startup_window_seconds:,.0f} s "
        f"({analysis.window_criterion}): {analysis.startup_scrap_units} startup vs "
        f"{analysis.steady_state_scrap_units} steady-state scrap units "
        f"({analysis.startup_share:.0%} in startup)."
    )
    for issue in analysis.issues:
        console.print(f"[cyan]note:[/cyan] {render(issue.message_key, issue.params)}")


@app.command()
def calculate(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Input YAML/JSON"),
    economics: Path | None = typer.Option(
        None, "--economics", exists=True, dir_okay=False, help="Economic parameters YAML/JSON."
    ),
    thresholds: str | None = typer.Option(
        None,
        "--thresholds",
        click_type=PRESET_CHOICE,
        help="Threshold preset overriding the input file.",
    ),
    sensitivity: bool = typer.Option(
        True, "--sensitivity/--no-sensitivity", help="Run the sensitivity stage."
    ),
    variation: float = typer.Option(10.0, "--variation", help="Sensitivity variation (%)."),
    workers: int = typer.Option(1, "--workers", min=1, help="Threads for independent stages."),
    json_out: Path | None = typer.Option(None, "--json-out", help="Write the full result JSON."),
    tree_csv: Path | None = typer.Option(None, "--tree-csv", help="Write the loss tree as CSV."),
    telemetry_log: Path | None = typer.Option(
        None, "--telemetry-log", help="Append a run record to this JSONL file."
    ),
):
    """Calculate OEE, loss tree and assumption ledger for one machine."""
    try:
        data = load_input(input_path, thresholds=thresholds)
        parameters = load_economic_parameters(economics) if economics else None
    except (ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc

    run_log: CalculationRunLog | None = None
    if telemetry_log:
        run_log = CalculationRunLog(
            log_path=telemetry_log,
            command="calculate",
            machine_id=data.machine.machine_id,
            config={
                "input": str(input_path),
                "thresholds": thresholds,
                "economics": economics is not None,
                "sensitivity": sensitivity,
                "variation": variation,
                "workers": workers,
                "version": __version__,
            },
        )

    artifacts: list[str] = []
    with run_log if run_log else nullcontext():
        try:
            full = calculate_full(
                data,
                parameters,
                include_sensitivity=sensitivity,
                sensitivity_variation=variation,
                max_workers=workers,
            )
        except ValueError as exc:
            raise _fail(exc) from exc
        result = full.result

        console.print(
            f"[bold]{data.machine.machine_id}[/bold] "
            f"{data.window.start.isoformat()} → {data.window.end.isoformat()}"
        )
        _print_metrics(result)
        _print_tree(result.loss_tree)
        _print_issues(result)
        if result.economic_analysis is not None:
            _print_economics(result.economic_analysis)
        if full.sensitivity_analysis is not None:
            _print_sensitivity(full.sensitivity_analysis)
        if full.temporal_scrap_analysis is not None:
            _print_temporal(full.temporal_scrap_analysis)

        if json_out:
            json_out.parent.mkdir(parents=True, exist_ok=True)
            json_out.write_text(full.model_dump_json(indent=2), encoding="utf-8")
            console.print(f"Result JSON saved to {json_out}")
            artifacts.append(str(json_out))
        if tree_csv:
            tree_csv.parent.mkdir(parents=True, exist_ok=True)
            loss_tree_dataframe(result.loss_tree).to_csv(tree_csv, index=False)
            console.print(f"Loss tree saved to {tree_csv}")
            artifacts.append(str(tree_csv))

        if run_log:
            run_log.record_result(
                metrics=result.headline(),
                validation=_validation_counts(result.validation),
                artifacts=artifacts,
            )


def _path_label(path: tuple[str, ...]) -> str:
    return " > ".join(MESSAGES.get(f"loss_tree.{segment}", label(segment)) for segment in path)


@app.command()
def leverage(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Input YAML/JSON"),
    variation: float = typer.Option(10.0, "--variation", help="Perturbation for scores (%)."),
    top: int = typer.Option(10, "--top", min=1, help="Rows to display."),
    csv: Path | None = typer.Option(None, "--csv", help="Write the full ranking as CSV."),
):
    """Rank loss categories by the OEE recovered if each were eliminated."""
    try:
        data = load_input(input_path)
        analysis = analyze_leverage(data, variation)
    except (ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc

    table = Table(title=f"Leverage ranking (baseline OEE {analysis.baseline_oee:.2%})")
    table.add_column("#", justify="right")
    table.add_column("Category")
    table.add_column("Seconds", justify="right")
    table.add_column("OEE gain (pts)", justify="right")
    table.add_column("Units", justify="right")
    table.add_column("Sensitivity", justify="right")
    for rank, impact in enumerate(analysis.top(top), start=1):
        table.add_row(
            str(rank),
            _path_label(impact.path),
            f"{impact.duration:,.1f}",
            f"{impact.oee_opportunity_points:.2f}",
            str(impact.throughput_gain_units),
            f"{impact.sensitivity_score:.2f}",
        )
    console.print(table)
    if csv:
        csv.parent.mkdir(parents=True, exist_ok=True)
        leverage_dataframe(analysis).to_csv(csv, index=False)
        console.print(f"Leverage ranking saved to {csv}")


def _machine_data(machines_file: Path, thresholds: str | None) -> list[MachineOeeData]:
    entries = load_machines(machines_file, thresholds=thresholds)
    return [
        MachineOeeData(
            machine_id=entry.machine_id,
            machine_name=entry.machine_name,
            result=run_calculation(entry.data),
            sequence_position=entry.sequence_position,
        )
        for entry in entries
    ]


@app.command()
def aggregate(
    machines_file: Path = typer.Argument(..., exists=True, dir_okay=False),
    method: str = typer.Option(
        AggregationMethod.WEIGHTED_BY_PLANNED_TIME.value,
        "--method",
        click_type=METHOD_CHOICE,
        help="Aggregation method.",
    ),
    compare: bool = typer.Option(False, "--compare", help="Compare every method."),
    thresholds: str | None = typer.Option(None, "--thresholds", click_type=PRESET_CHOICE),
    csv: Path | None = typer.Option(None, "--csv", help="Write per-machine rows as CSV."),
):
    """Combine several machines into a system-level OEE."""
    try:
        machines = _machine_data(machines_file, thresholds)
    except (ValueError, FileNotFoundError) as exc:
        raise _fail(exc) from exc

    if compare:
        comparison = compare_aggregation_methods(machines)
        table = Table(title="Aggregation methods")
        table.add_column("Method")
        table.add_column("System OEE", justify="right")
        table.add_column("Use case")
        for name, item in comparison.comparisons.items():
            marker = " *" if item.method is comparison.recommended_method else ""
            table.add_row(f"{name}{marker}", f"{item.system_oee:.2%}", render(item.use_case_key))
        console.print(table)
        console.print(
            f"Recommended: [bold]{comparison.recommended_method.value}[/bold]. "
            f"{render(comparison.recommendation_key)}"
        )
        return

    analysis = aggregate_system(machines, method)
    table = Table(title=f"System OEE ({analysis.method.value}): {analysis.system_oee:.2%}")
    table.add_column("Machine")
    table.add_column("OEE", justify="right")
    table.add_column("Planned share", justify="right")
    table.add_column("Confidence")
    for summary in analysis.machines:
        table.add_row(
            summary.machine_name or summary.machine_id,
            f"{summary.oee:.2%}",
            f"{summary.planned_time_share:.0%}",
            summary.confidence.value,
        )
    console.print(table)
    bottleneck = analysis.bottleneck
    if bottleneck.machine_id is not None:
        console.print(f"Bottleneck: [bold]{bottleneck.machine_id}[/bold] ({bottleneck.oee:.2%})")
        for key in bottleneck.recommended_action_keys:
            console.print(f"  - {render(key)}")
    if csv:
        csv.parent.mkdir(parents=True, exist_ok=True)
        aggregation_dataframe(analysis).to_csv(csv, index=False)
        console.print(f"Machine rows saved to {csv}")


@app.command("thresholds")
def thresholds_cmd(
    as_json: bool = typer.Option(False, "--json", help="Print presets as JSON."),
):
    """List the threshold presets."""
    if as_json:
        payload: dict[str, Any] = {
            name: preset.model_dump() for name, preset in sorted(THRESHOLD_PRESETS.items())
        }
        console.print_json(json.dumps(payload))
        return
    for line in format_presets():
        console.print(f"- {line}")


if __name__ == "__main__":
    app()
