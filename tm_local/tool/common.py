"""Common utilities for tm-local commands."""

import logging
import pathlib
from argparse import ArgumentParser
from typing import Any

from tm_local.config import Config, load_config
from tm_local.manifest import DeliveryOptions
from tm_local.orchestrator import ComponentResult, ContextState, Orchestrator
from tm_local.runtime import DockerRuntime
from tm_local.schema import FileSchemaProvider

from .format import formatter

_LOGGER = logging.getLogger(__name__)

RESULT_COLUMNS = ["name", "kind", "action", "reason", "triggers"]


def add_common_flags(args: ArgumentParser) -> None:
    """Add flags selecting the configuration and context."""
    args.add_argument(
        "--config-home",
        help="Directory holding the configuration and broker contexts",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--context",
        help="Broker context to operate on, the active one by default",
        default=None,
    )
    args.add_argument(
        "--version",
        help="Version of the component adapter images",
        default=None,
    )


def add_output_flags(args: ArgumentParser) -> None:
    """Add the flag selecting the output format."""
    args.add_argument(
        "--output",
        "-o",
        choices=["table", "yaml", "json"],
        default="table",
        help="Output format of the command",
    )


def add_delivery_flags(args: ArgumentParser) -> None:
    """Add flags setting the delivery policy of trigger targets."""
    args.add_argument(
        "--retries",
        type=int,
        default=None,
        help="Number of delivery retries",
    )
    args.add_argument(
        "--backoff-delay",
        default=None,
        help="ISO-8601 duration between delivery retries, e.g. PT0.5S",
    )
    args.add_argument(
        "--backoff-policy",
        choices=["linear", "exponential"],
        default=None,
        help="Growth of the delay between delivery retries",
    )


def delivery_options(
    retries: int | None = None,
    backoff_delay: str | None = None,
    backoff_policy: str | None = None,
    **kwargs: Any,
) -> DeliveryOptions | None:
    """Return the delivery options from command line flags, if any are set."""
    doc = {
        "retries": retries,
        "backoffDelay": backoff_delay,
        "backoffPolicy": backoff_policy,
    }
    if all(value is None for value in doc.values()):
        return None
    return DeliveryOptions.parse_doc(doc)


def load(
    config_home: pathlib.Path | None = None,
    context: str | None = None,
    version: str | None = None,
    **kwargs: Any,
) -> Config:
    """Load the configuration with command line overrides."""
    return load_config(config_home, context=context, version=version)


def build_orchestrator(config: Config, context: str | None = None) -> Orchestrator:
    """Return an orchestrator using docker over a context."""
    return Orchestrator(
        config,
        DockerRuntime(),
        FileSchemaProvider(config.schema_cache()),
        state=ContextState.open(config, context),
    )


def print_results(results: list[ComponentResult], output: str = "table") -> None:
    """Print the per-component results of an operation."""
    data = [result.to_dict() for result in results]
    formatter(output, RESULT_COLUMNS).print(data)
