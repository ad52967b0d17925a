"""tm-local start and stop actions."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from tm_local.exceptions import AggregateTaskError

from . import common


_LOGGER = logging.getLogger(__name__)


class StartAction:
    """Start every component of a broker context."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "start",
                help="Start the broker and every declared component",
                description=(
                    "Create the broker of the context if needed, make it the "
                    "active context and start every declared component"
                ),
            ),
        )
        args.add_argument(
            "--restart",
            help="Restart containers even if nothing changed",
            action="store_true",
            default=False,
        )
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        restart: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        config.save()
        orchestrator = common.build_orchestrator(config)
        await orchestrator.ensure_broker()
        try:
            results = await orchestrator.reconcile_all(restart=restart)
        except AggregateTaskError as err:
            common.print_results(err.results, output)
            raise
        common.print_results(results, output)


class StopAction:
    """Stop every component of a broker context."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "stop",
                help="Stop the containers of every declared component",
                description="Stop the containers of the context, keeping their declarations",
            ),
        )
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        orchestrator = common.build_orchestrator(config)
        common.print_results(await orchestrator.stop_all(), output)
