"""
webstack CLI - synthesize and inspect hosting topologies.
"""

import logging
import sys

import click

from webstack import __version__
from webstack.blueprints.python_web import load_blueprint_config, python_web_topology
from webstack.core.topology import Topology
from webstack.errors import WebstackError
from webstack.settings import load_settings

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="warning",
    help="Logging verbosity",
)
def cli(log_level: str):
    """
    webstack - provision a web server and its delivery pipeline from code.

    CONFIG files are YAML with optional `settings:` and `app:` sections.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "fmt", type=click.Choice(["json", "yaml"]), default="json")
def synth(config_file: str, fmt: str):
    """
    Synthesize the topology and print the provisioning plan.

    Example:
        webstack synth webstack.yaml
        webstack synth webstack.yaml --format yaml
    """
    topology = _load_topology(config_file)
    try:
        plan = topology.synthesize()
    except WebstackError as e:
        click.echo(f"✗ Synthesis failed: {e}", err=True)
        sys.exit(1)

    click.echo(plan.to_yaml() if fmt == "yaml" else plan.to_json())


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def validate(config_file: str):
    """
    Validate the topology without printing the plan.

    Example:
        webstack validate webstack.yaml
    """
    topology = _load_topology(config_file)
    try:
        topology.validate()
    except WebstackError as e:
        click.echo(f"✗ Topology '{topology.name}' is invalid: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Topology '{topology.name}' is valid")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def targets(config_file: str):
    """
    Show which instances each deployment group would deploy to.

    Example:
        webstack targets webstack.yaml
    """
    topology = _load_topology(config_file)

    for group in topology.deployment_groups:
        matched = topology.deployment_targets(group)
        click.echo(f"{group.application.name}/{group.name}")
        for key, values in group.selector.to_dict().items():
            click.echo(f"  {key} in {{{', '.join(values)}}}")
        if not matched:
            logger.warning("Deployment group '%s' matches no instances", group.name)
            click.echo("  ! no matching instances", err=True)
        for instance in matched:
            tags = ", ".join(f"{k}={v}" for k, v in sorted(instance.tags.items()))
            click.echo(f"  -> {instance.name} ({tags})")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def outputs(config_file: str):
    """
    List the outputs the topology exports after realization.

    Example:
        webstack outputs webstack.yaml
    """
    topology = _load_topology(config_file)
    for name, resolver in topology.outputs.declared().items():
        click.echo(f"{name}: {resolver!r}")


def _load_topology(config_file: str) -> Topology:
    """
    Build the topology described by a YAML config file.

    Exits with status 1 when the file describes an invalid topology.
    """
    try:
        settings = load_settings(config_file)
        config = load_blueprint_config(config_file)
        return python_web_topology(config, settings)
    except WebstackError as e:
        click.echo(f"✗ Could not load {config_file}: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
