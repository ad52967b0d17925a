"""tm-local apply action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast
import pathlib

import aiofiles

from tm_local.exceptions import InputException
from tm_local.manifest import BROKER_KIND, SECRET_KIND, TRIGGER_KIND, parse_resources
from tm_local.orchestrator import Action, ComponentResult
from tm_local.schema import resolve_capability

from . import common


_LOGGER = logging.getLogger(__name__)


class ApplyAction:
    """Declare components and bring them to their declared state."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "apply",
                help="Declare and run components from a manifest file",
                description=(
                    "Store the resources of a manifest file in the broker context "
                    "and start or restart their containers as needed"
                ),
            ),
        )
        args.add_argument(
            "--filename",
            "-f",
            help="Multi-document YAML file of resources",
            type=pathlib.Path,
            required=True,
        )
        args.add_argument(
            "--source",
            help="Producer whose event types the consumers receive",
            action="append",
            default=[],
        )
        args.add_argument(
            "--event-types",
            help="Comma separated event types the consumers receive",
            default=None,
        )
        args.add_argument(
            "--restart",
            help="Restart containers even if nothing changed",
            action="store_true",
            default=False,
        )
        common.add_common_flags(args)
        common.add_delivery_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        filename: pathlib.Path,
        source: list[str],
        event_types: str | None,
        restart: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        orchestrator = common.build_orchestrator(config, kwargs.get("context"))
        options = common.delivery_options(**kwargs)
        types = [t.strip() for t in (event_types or "").split(",") if t.strip()]
        try:
            async with aiofiles.open(filename) as manifest_file:
                content = await manifest_file.read()
        except OSError as err:
            raise InputException(f"Unable to read {filename}: {err}") from err
        resources = parse_resources(content)

        await orchestrator.ensure_broker()
        results: list[ComponentResult] = []
        # Secrets first so components in the same file can refer to them
        for resource in resources:
            if resource.kind != SECRET_KIND:
                continue
            changed = await orchestrator.declare_secret(resource)
            results.append(
                ComponentResult(
                    name=resource.name,
                    kind=resource.kind,
                    action=Action.CREATED if changed else Action.UNCHANGED,
                )
            )
        for resource in resources:
            if resource.kind == SECRET_KIND:
                continue
            if resource.kind == TRIGGER_KIND:
                results.append(
                    ComponentResult(
                        name=resource.name,
                        kind=resource.kind,
                        action=Action.SKIPPED,
                        reason="use the trigger command",
                    )
                )
                continue
            if resource.kind == BROKER_KIND and resource.name != orchestrator.broker:
                raise InputException(
                    f"{resource} does not belong to context {orchestrator.broker}"
                )
            if resolve_capability(resource, orchestrator.schemas).consumer:
                result = await orchestrator.reconcile(
                    resource,
                    sources=source,
                    event_types=types,
                    delivery_options=options,
                    restart=restart,
                )
            else:
                result = await orchestrator.reconcile(resource, restart=restart)
            results.append(result)
        common.print_results(results, output)
