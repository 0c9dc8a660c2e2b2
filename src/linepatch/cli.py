"""Command line interface for applying line patch batches to text files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Tuple

import typer
import yaml

from .config import EngineConfig, load_config
from .engine import BatchValidationError, apply_patches, plan_patches
from .invariants import InvariantViolation, PatchEngineError
from .models import Document, parse_revision
from .observability import MetricsRecorder, Observability

APP_HELP = "Apply batches of line-level patches to text documents."
EXIT_REJECTED = 1
EXIT_PARTIAL = 2

app = typer.Typer(help=APP_HELP)


def _load_settings(config_path: Optional[Path]) -> EngineConfig:
    if config_path is not None and not config_path.is_file():
        raise typer.BadParameter(f"Config file not found: {config_path}")
    try:
        return load_config(config_path)
    except (yaml.YAMLError, ValueError, OSError) as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error


def _load_patches(path: Path) -> Any:
    """Read a YAML or JSON patch list (or a mapping with a ``patches`` key)."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except (yaml.YAMLError, UnicodeDecodeError) as error:
        typer.echo(f"Failed to parse patches: {error}")
        raise typer.Exit(code=EXIT_REJECTED) from error


def _read_document(path: Path, revision: str) -> Tuple[Document, bool]:
    try:
        text = path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as error:
        typer.echo(f"Failed to read document: {error}", err=True)
        raise typer.Exit(code=EXIT_REJECTED) from error
    trailing_newline = text.endswith("\n")
    if trailing_newline:
        text = text[:-1]
    return Document.from_text(text, revision=parse_revision(revision)), trailing_newline


def _build_observability(settings: EngineConfig, verbose: bool, with_metrics: bool) -> Observability:
    """Attach a logger only when verbose output or a chatty log level is requested."""
    level = logging.DEBUG if verbose else settings.logging_level
    logger = None
    if level < logging.WARNING:
        logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
        logger = logging.getLogger("linepatch")
    metrics = MetricsRecorder() if with_metrics else None
    return Observability(logger=logger, metrics=metrics)


def _report_rejection(error: PatchEngineError) -> None:
    typer.echo(f"Batch rejected: {error}", err=True)
    if isinstance(error, BatchValidationError):
        for item in error.errors:
            if "index" in item:
                typer.echo(f"  - patch {item['index']}: {item['error']}", err=True)
    elif isinstance(error, InvariantViolation) and error.context:
        typer.echo(f"  context: {json.dumps(error.context, sort_keys=True)}", err=True)


@app.command("apply")
def apply_command(
    document: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to patch."),
    patches: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML/JSON patch list."),
    revision: str = typer.Option("v1", "--revision", help="Current document revision (N or vN)."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to linepatch.yaml."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not write the patched document."),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline telemetry."),
    show_metrics: bool = typer.Option(False, "--metrics", help="Print collected metrics."),
) -> None:
    """Apply a patch batch to DOCUMENT and write it back."""
    settings = _load_settings(config)
    observability = _build_observability(settings, verbose, show_metrics)
    current, trailing_newline = _read_document(document, revision)
    payload = _load_patches(patches)

    try:
        result = apply_patches(current, payload, observability=observability, config=settings)
    except PatchEngineError as error:
        _report_rejection(error)
        raise typer.Exit(code=EXIT_REJECTED) from error

    if not dry_run and result.applied_count:
        document.write_text(result.new_text + ("\n" if trailing_newline else ""), encoding="utf-8")

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        status = "ok" if result.success else "partial"
        typer.echo(
            f"Applied {result.applied_count} patch(es) [{status}] "
            f"revision {current.revision_label} -> {result.new_revision_label}"
        )
        for warning in result.warnings:
            typer.echo(f"  {warning.level}: {warning.message}")
        for failure in result.failed_patches:
            typer.echo(f"  failed patch {failure.index}: {failure.error}")
        if result.error:
            typer.echo(f"  error: {result.error}")
        if dry_run:
            typer.echo("Dry run: document not written.")
    if show_metrics and isinstance(observability.metrics, MetricsRecorder):
        typer.echo(observability.metrics.summary())

    if not result.success:
        raise typer.Exit(code=EXIT_PARTIAL)


@app.command("plan")
def plan_command(
    document: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file the patches target."),
    patches: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML/JSON patch list."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to linepatch.yaml."),
) -> None:
    """Show the normalized execution order for a patch batch."""
    settings = _load_settings(config)
    current, _ = _read_document(document, "v1")
    payload = _load_patches(patches)

    try:
        plan = plan_patches(current, payload, config=settings)
    except PatchEngineError as error:
        _report_rejection(error)
        raise typer.Exit(code=EXIT_REJECTED) from error

    typer.echo(plan.semantics.describe())
    typer.echo("Execution order:")
    for kind, lines in plan.execution_order().items():
        if lines:
            typer.echo(f"  {kind}: {', '.join(str(line) for line in lines)}")
    for warning in plan.warnings:
        typer.echo(f"  {warning.level}: {warning.message}")


if __name__ == "__main__":
    app()
