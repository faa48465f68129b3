"""CLI commands for running and planning a consultation.

``consult`` runs the full pipeline against live backends. ``route`` and
``consult --dry-run`` stop after complexity analysis and model selection,
so they need no credentials.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from tcmconsult.config import TcmConsultConfig, load_config
from tcmconsult.diagnostic.orchestrator import routing_inputs
from tcmconsult.diagnostic.schema import DiagnosticRequest
from tcmconsult.errors import PipelineStageError, TcmConsultError
from tcmconsult.routing.complexity import ComplexityAnalyzer
from tcmconsult.routing.router import ModelRouter
from tcmconsult.routing.schema import CandidateSelection, RequestComplexity
from tcmconsult.runtime import (
    api_key_from_env,
    build_orchestrator,
    create_adapters,
    create_safety_assistant,
    hf_token_from_env,
)

load_dotenv()

logger = structlog.get_logger()


def _load_request(path: str) -> DiagnosticRequest:
    try:
        return DiagnosticRequest.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise click.ClickException(f"Invalid request file {path}: {exc}") from exc


def plan_request(
    request: DiagnosticRequest, config: TcmConsultConfig
) -> tuple[RequestComplexity, CandidateSelection]:
    """Complexity + candidate selection without any model call."""
    complexity = ComplexityAnalyzer(config.routing).analyze(request)
    router = ModelRouter(adapters=None, config=config.routing)
    requirements, overrides = routing_inputs(request)
    selection = router.select_candidates(complexity, requirements, overrides)
    return complexity, selection


def _echo_plan(
    complexity: RequestComplexity, selection: CandidateSelection, show_scores: bool
) -> None:
    click.echo(f"Complexity: {complexity.tier} ({complexity.score:.0f}/100)")
    for reason in complexity.reasoning[1:]:
        click.echo(f"  - {reason}")
    click.echo(f"Primary model: {selection.primary.model_id}")
    click.echo(f"Fallbacks: {', '.join(m.model_id for m in selection.fallbacks) or 'none'}")
    if show_scores:
        click.echo("Ranking:")
        for scored in selection.ranked:
            click.echo(f"  {scored.candidate.model_id:<24} {scored.score:6.1f}")
    for line in selection.reasoning:
        click.echo(f"  > {line}")


@click.command("consult")
@click.argument("request_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
@click.option("--timeout", "timeout_seconds", type=float, default=None, help="Override pipeline deadline (s)")
@click.option("--dry-run", is_flag=True, help="Show complexity and model selection without calling models")
def consult_cmd(
    request_path: str, config_path: str | None, timeout_seconds: float | None, dry_run: bool
):
    """Run one consultation request through the diagnostic pipeline."""
    config = load_config(config_path)
    request = _load_request(request_path)

    if dry_run:
        try:
            complexity, selection = plan_request(request, config)
        except TcmConsultError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo("Dry run: no models will be called")
        _echo_plan(complexity, selection, show_scores=False)
        return

    api_key = api_key_from_env()
    try:
        adapters = create_adapters(config.routing, api_key=api_key, hf_token=hf_token_from_env())
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    orchestrator = build_orchestrator(config, adapters, create_safety_assistant(api_key))
    try:
        response = asyncio.run(orchestrator.process(request, timeout_seconds=timeout_seconds))
    except PipelineStageError as exc:
        logger.error("consult_failed", stage=exc.stage, classification=exc.classification)
        raise click.ClickException(f"Consultation failed at {exc.stage}: {exc.classification}") from exc
    except TcmConsultError as exc:
        raise click.ClickException(f"Consultation failed: {type(exc).__name__}: {exc}") from exc

    click.echo(json.dumps(response.model_dump(mode="json"), indent=2, ensure_ascii=False))


@click.command("route")
@click.argument("request_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def route_cmd(request_path: str, config_path: str | None):
    """Show complexity analysis and ranked model candidates for a request."""
    config = load_config(config_path)
    request = _load_request(request_path)
    try:
        complexity, selection = plan_request(request, config)
    except TcmConsultError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_plan(complexity, selection, show_scores=True)
