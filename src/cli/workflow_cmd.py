"""Workflow commands for the gha-iam CLI."""

from typing import Optional

import click

from errors import ProvisioningError
from workflow import render_workflow, write_workflow

from .context import fail, get_config


@click.group()
def main() -> None:
    """CI workflow that consumes the provisioned secrets."""
    pass


@main.command()
@click.pass_context
def render(ctx: click.Context) -> None:
    """Print the verification workflow YAML."""
    try:
        click.echo(render_workflow(get_config(ctx)), nl=False)
    except ProvisioningError as e:
        fail(str(e))


@main.command()
@click.option(
    "--repo-root", type=click.Path(file_okay=False), default=".",
    help="Repository root to write .github/workflows into",
)
@click.pass_context
def write(ctx: click.Context, repo_root: Optional[str]) -> None:
    """Write the verification workflow into the repository."""
    try:
        path = write_workflow(get_config(ctx), repo_root)
    except ProvisioningError as e:
        fail(str(e))

    click.echo(f"✅ Wrote {path}")
