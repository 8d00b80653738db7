"""Shared helpers for CLI commands."""

import logging
import sys

import click

from config import ProvisioningConfig, load_provisioning_config, parse_overrides
from provisioning import Provisioner
from sensitive import redacting_filter

# Libraries whose debug output includes raw API bodies, access key secrets among them
QUIET_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def configure_logging(verbose: bool) -> None:
    """Configure root logging and install the secret redaction filter."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if redacting_filter not in handler.filters:
            handler.addFilter(redacting_filter)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_config(ctx: click.Context) -> ProvisioningConfig:
    """Load the configuration once per invocation."""
    obj = ctx.ensure_object(dict)
    if "config" not in obj:
        obj["config"] = load_provisioning_config(
            path=obj.get("config_path"),
            overrides=parse_overrides(obj.get("overrides", ())),
        )
    return obj["config"]


def get_provisioner(ctx: click.Context) -> Provisioner:
    obj = ctx.ensure_object(dict)
    if "provisioner" not in obj:
        obj["provisioner"] = Provisioner(get_config(ctx))
    return obj["provisioner"]


def fail(message: str) -> None:
    """Print an error and exit non-zero."""
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)
