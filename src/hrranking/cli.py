"""Typer CLI entrypoint for the evaluation and ranking engine."""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, NoReturn, Optional

import typer
import yaml
from pydantic import ValidationError

from .container import create_container
from .errors import EvaluationEngineError
from .logging import configure_logging
from .pipeline import AuditLogger, EvaluationPipeline
from .schemas.config import load_config

app = typer.Typer(help="Candidate evaluation and ranking CLI.")


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    try:
        return load_config(loaded).to_settings()
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid config file: {exc}", param_name="config") from exc


def _build_pipeline(config: Optional[Path], log_level: str, log_format: str) -> EvaluationPipeline:
    settings = _load_settings(config)
    configure_logging(log_level, renderer=log_format)
    container = create_container(settings=settings)
    return container.pipeline()


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


ConfigOption = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path.")
LogLevelOption = typer.Option("INFO", help="Log level for structured logging.")
LogFormatOption = typer.Option("json", help="Log renderer: json or console.")


@app.command()
def evaluate(
    candidates: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Candidates JSONL path."),
    job: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Job description JSON path."),
    output: Path = typer.Option(..., dir_okay=False, resolve_path=True, help="Output JSON path."),
    candidate_id: Optional[List[str]] = typer.Option(None, help="Evaluate only these candidate ids."),
    concurrency: Optional[int] = typer.Option(None, help="Parallel evaluations (1-10)."),
    instructions: Optional[str] = typer.Option(None, help="Custom instructions passed to the scorer."),
    org_id: Optional[str] = typer.Option(None, help="Organisation scope for all records."),
    timeout: Optional[float] = typer.Option(None, help="Seconds to wait for each batch."),
    audit_log: Optional[Path] = typer.Option(None, dir_okay=False, help="Audit log output (JSONL)."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    log_format: str = LogFormatOption,
) -> None:
    """Evaluate candidates against a job in a batch session."""
    pipeline = _build_pipeline(config, log_level, log_format)
    try:
        payload = pipeline.evaluate(
            candidates_path=candidates,
            job_path=job,
            output_path=output,
            org_id=org_id,
            candidate_ids=candidate_id or None,
            concurrency=concurrency,
            custom_instructions=instructions,
            timeout=timeout,
            audit_logger=AuditLogger(audit_log) if audit_log else None,
        )
    except (EvaluationEngineError, ValueError) as exc:
        _fail(exc)
    metadata = payload["metadata"]
    typer.echo(
        f"Evaluated {metadata['candidate_count']} candidates "
        f"({metadata['completed_count']} completed, {metadata['failed_count']} failed). "
        f"Results saved to {output}."
    )


@app.command()
def rank(
    evaluations: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Evaluations JSON/JSONL path."),
    criteria: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Ranking criteria YAML/JSON path."),
    output: Path = typer.Option(..., dir_okay=False, resolve_path=True, help="Output JSON path."),
    job_id: Optional[str] = typer.Option(None, help="Job id; defaults to the one in the criteria file."),
    candidates: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="Candidate profiles JSONL for tie-breaking."),
    org_id: Optional[str] = typer.Option(None, help="Only accept evaluations from this organisation."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
    log_format: str = LogFormatOption,
) -> None:
    """Rank the evaluated candidates of a job."""
    pipeline = _build_pipeline(config, log_level, log_format)
    try:
        payload = pipeline.rank(
            evaluations_path=evaluations,
            criteria_path=criteria,
            output_path=output,
            job_id=job_id,
            candidates_path=candidates,
            org_id=org_id,
        )
    except (EvaluationEngineError, ValueError) as exc:
        _fail(exc)
    ranked = payload["result"]["ranked_candidates"]
    typer.echo(f"Ranked {len(ranked)} candidates. Results saved to {output}.")


@app.command()
def compare(
    evaluations: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Evaluations JSON/JSONL path."),
    job_id: str = typer.Option(..., help="Job id to compare candidates for."),
    candidate_id: List[str] = typer.Option(..., help="Candidate ids to compare (at least two)."),
    output: Path = typer.Option(..., dir_okay=False, resolve_path=True, help="Output JSON path."),
    log_level: str = LogLevelOption,
    log_format: str = LogFormatOption,
) -> None:
    """Build a side-by-side comparison of candidates."""
    pipeline = _build_pipeline(None, log_level, log_format)
    try:
        payload = pipeline.compare(
            evaluations_path=evaluations,
            job_id=job_id,
            candidate_ids=candidate_id,
            output_path=output,
        )
    except (EvaluationEngineError, ValueError) as exc:
        _fail(exc)
    compared = payload["comparison"]["candidate_ids"]
    typer.echo(f"Compared {len(compared)} candidates. Results saved to {output}.")


@app.command()
def summary(
    evaluations: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Evaluations JSON/JSONL path."),
    job_id: str = typer.Option(..., help="Job id to summarise."),
    output: Path = typer.Option(..., dir_okay=False, resolve_path=True, help="Output JSON path."),
    log_level: str = LogLevelOption,
    log_format: str = LogFormatOption,
) -> None:
    """Summarise the latest evaluations of a job."""
    pipeline = _build_pipeline(None, log_level, log_format)
    try:
        payload = pipeline.summarize(evaluations_path=evaluations, job_id=job_id, output_path=output)
    except (EvaluationEngineError, ValueError) as exc:
        _fail(exc)
    total = payload["summary"]["total_evaluations"]
    typer.echo(f"Summarised {total} evaluations. Results saved to {output}.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
