"""CLI entry point for tcmconsult."""

import click

from tcmconsult.cli.consult import consult_cmd, route_cmd
from tcmconsult.cli.preflight import preflight_cmd


@click.group()
def main():
    """TCM consultation backend: complexity routing, fallback generation, safety validation."""
    pass


main.add_command(consult_cmd)
main.add_command(route_cmd)
main.add_command(preflight_cmd)
