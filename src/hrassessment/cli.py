"""Typer CLI entrypoint for offline assessment tooling."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
import yaml

from .adapters.judge0 import LANGUAGE_IDS
from .container import create_container
from .errors import AssessmentError
from .logging import configure_logging
from .schemas import AssessmentSet, Job
from .service import evaluate_offline, load_answers, load_json, write_json

app = typer.Typer(help="Candidate assessment CLI.")


def _load_settings(config: Optional[Path]) -> dict[str, Any]:
    if not config:
        return {}
    with config.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise typer.BadParameter("Config file must be a YAML object", param_name="config")
    return loaded


@app.command()
def languages() -> None:
    """List the languages accepted by the code execution service."""
    for name, language_id in sorted(LANGUAGE_IDS.items()):
        typer.echo(f"{name}\t{language_id}")


@app.command()
def evaluate(
    set_path: Path = typer.Option(
        ..., "--set", exists=True, readable=True, dir_okay=False, help="Assessment set JSON path."
    ),
    answers: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Answer sheet JSON path."),
    job: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Job JSON path."),
    output: Path = typer.Option(
        ...,
        exists=False,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Output JSON path.",
    ),
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML config path."),
    assessment_id: str = typer.Option("offline", help="Identifier recorded on the evaluation."),
    log_level: str = typer.Option("INFO", help="Log level for structured logging."),
    log_format: str = typer.Option("json", help="Log renderer: json or console."),
) -> None:
    """Score a stored answer sheet and write the evaluation JSON.

    Programming answers whose ``judged_code`` equals their ``code`` are scored
    from the stored pass counts; others are judged through the execution service.
    """
    settings = _load_settings(config)
    configure_logging(log_level, fmt=log_format)

    try:
        container = create_container(settings=settings)
        job_record = Job.model_validate(load_json(job))
        assessment_set = AssessmentSet.model_validate(load_json(set_path))
        sheet = load_answers(load_json(answers), assessment_id)
    except AssessmentError as exc:
        raise typer.BadParameter(str(exc)) from exc
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid input: {exc}") from exc

    evaluation = evaluate_offline(
        container.aggregator(),
        job=job_record,
        assessment_set=assessment_set,
        answers=sheet,
        assessment_id=assessment_id,
    )
    write_json(output, evaluation.model_dump(mode="json"))
    typer.echo(
        f"Weighted score {evaluation.weighted_percentage:.1f}% -> {evaluation.recommendation}. "
        f"Results saved to {output}."
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
