"""CLI command for backend health preflight."""

from __future__ import annotations

import asyncio
import sys

import click
from dotenv import load_dotenv

from tcmconsult.config import load_config
from tcmconsult.runtime import (
    api_key_from_env,
    create_adapters,
    failed_preflight_checks,
    hf_token_from_env,
    run_preflight,
)

load_dotenv()


@click.command("preflight")
@click.option("--config", "config_path", type=click.Path(exists=True), default=None)
def preflight_cmd(config_path: str | None):
    """Check that every configured model backend responds."""
    config = load_config(config_path)
    try:
        adapters = create_adapters(
            config.routing, api_key=api_key_from_env(), hf_token=hf_token_from_env()
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    results = asyncio.run(run_preflight(adapters))
    for result in results:
        status = "OK  " if result.ok else "FAIL"
        click.echo(f"{status} {result.name:<24} {result.latency_ms:7.0f}ms  {result.detail}")

    failed = failed_preflight_checks(results)
    if failed:
        click.echo(f"{len(failed)} of {len(results)} checks failed", err=True)
        sys.exit(1)
