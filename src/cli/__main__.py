#!/usr/bin/env python3
"""Main CLI entry point for GitHub Actions IAM credential provisioning."""

import json
import sys
from typing import Any, Dict, Optional, Tuple

import click
from colorama import Fore, Style, init

from errors import ProvisioningError
from provisioning import Action, Plan, Provisioner
from sensitive import REDACTED, SensitiveJSONEncoder, reveal
from verification import CheckStatus, CredentialVerifier

from .context import configure_logging, fail, get_config, get_provisioner
from .workflow_cmd import main as workflow_commands

# Initialize colorama for cross-platform colored output
init()

ACTION_SYMBOLS = {
    Action.CREATE: (Fore.GREEN, "+"),
    Action.UPDATE: (Fore.YELLOW, "~"),
    Action.REPLACE: (Fore.MAGENTA, "-/+"),
    Action.DELETE: (Fore.RED, "-"),
}


def print_plan(plan: Plan) -> None:
    """Print a plan with one colored line per resource."""
    if not plan.has_changes:
        click.echo("✅ No changes. Infrastructure matches the configuration.")
        return

    for change in plan.changes:
        if change.action is Action.NOOP:
            continue
        color, symbol = ACTION_SYMBOLS[change.action]
        line = f"  {color}{symbol} {change.address}{Style.RESET_ALL}"
        if change.reason:
            line += f"  ({change.reason})"
        click.echo(line)

    click.echo()
    click.echo(plan.summary())


def format_output_value(value: Any, sensitive: bool, show_sensitive: bool) -> Any:
    if sensitive and not show_sensitive:
        return REDACTED
    return reveal(value)


@click.group()
@click.version_option(package_name="gha-iam-credentials")
@click.option(
    "--config", "-c", "config_path", type=click.Path(dir_okay=False),
    help="YAML configuration file (default: ./gha-iam.yaml if present)",
)
@click.option(
    "--var", "overrides", multiple=True, metavar="KEY=VALUE",
    help="Override a configuration value (e.g. --var state.bucket=my-bucket)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], overrides: Tuple[str, ...], verbose: bool) -> None:
    """Provision an IAM user for GitHub Actions and hand its key over via repository secrets."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = overrides


cli.add_command(workflow_commands, name="workflow")


@cli.command("validate-config")
@click.pass_context
def validate_config(ctx: click.Context) -> None:
    """Load and validate the configuration without calling any API."""
    try:
        config = get_config(ctx)
    except ProvisioningError as e:
        fail(str(e))

    click.echo("✅ Configuration is valid")
    click.echo(f"   IAM user:   {config.iam_user_name}")
    click.echo(f"   Policy:     {config.policy_arn}")
    click.echo(f"   Repository: {config.repository_slug}")
    if config.state.backend == "s3":
        click.echo(f"   State:      s3://{config.state.bucket}/{config.state.key}")
    else:
        click.echo(f"   State:      {config.state.path}")
    if not config.github_token:
        click.echo(f"⚠️  {config.github_token_env} is not set; plan and apply will fail")


@cli.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """Show the changes an apply would make."""
    try:
        provisioner = get_provisioner(ctx)
        print_plan(provisioner.plan())
    except ProvisioningError as e:
        fail(str(e))


@cli.command()
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval")
@click.pass_context
def apply(ctx: click.Context, auto_approve: bool) -> None:
    """Create or update the IAM user, access key and repository secrets."""
    try:
        provisioner = get_provisioner(ctx)
        current_plan = provisioner.plan()
        print_plan(current_plan)

        if not current_plan.has_changes:
            return

        if not auto_approve:
            click.confirm("\nDo you want to perform these actions?", abort=True)

        result = provisioner.apply(current_plan)
    except ProvisioningError as e:
        fail(str(e))

    click.echo(f"\n✅ Apply complete! {result.summary()}")


@cli.command()
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval")
@click.pass_context
def destroy(ctx: click.Context, auto_approve: bool) -> None:
    """Delete the repository secrets, access key, policy attachment and IAM user."""
    try:
        provisioner = get_provisioner(ctx)
        if not auto_approve:
            config = provisioner.config
            click.confirm(
                f"⚠️  Destroy {config.iam_user_name} and its secrets in {config.repository_slug}?",
                abort=True,
            )
        result = provisioner.destroy()
    except ProvisioningError as e:
        fail(str(e))

    click.echo(f"✅ Destroy complete! {result.summary()}")


@cli.command()
@click.argument("name", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--show-sensitive", is_flag=True, help="Reveal sensitive values")
@click.pass_context
def output(ctx: click.Context, name: Optional[str], as_json: bool, show_sensitive: bool) -> None:
    """Show outputs recorded by the last apply."""
    try:
        outputs = get_provisioner(ctx).outputs()
    except ProvisioningError as e:
        fail(str(e))

    if not outputs:
        fail("No outputs found. Run 'apply' first.")

    if name:
        if name not in outputs:
            fail(f"Output {name!r} not found")
        entry = outputs[name]
        value = format_output_value(entry["value"], entry["sensitive"], show_sensitive)
        click.echo(json.dumps(value, cls=SensitiveJSONEncoder) if as_json else value)
        return

    values: Dict[str, Any] = {
        key: format_output_value(entry["value"], entry["sensitive"], show_sensitive)
        for key, entry in sorted(outputs.items())
    }
    if as_json:
        click.echo(json.dumps(values, indent=2, cls=SensitiveJSONEncoder))
    else:
        for key, value in values.items():
            click.echo(f"{key} = {value}")


@cli.command()
@click.option("--region", "-r", help="AWS region (default: AWS_REGION or us-east-1)")
def verify(region: Optional[str]) -> None:
    """Verify that the ambient AWS credentials can list S3 buckets."""
    verifier = CredentialVerifier.from_environment(region=region)
    result = verifier.run()

    for check in result.checks:
        if check.status is CheckStatus.PASSED:
            click.echo(f"✅ {check.name}")
        elif check.status is CheckStatus.SKIPPED:
            click.echo(f"ℹ️  {check.name}: {check.message}")
        else:
            click.echo(f"❌ {check.name}: {check.message}", err=True)

    if not result.passed:
        sys.exit(1)


if __name__ == "__main__":
    cli()
