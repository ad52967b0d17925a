"""tm-local delete action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from tm_local.exceptions import InputException

from . import common


_LOGGER = logging.getLogger(__name__)


class DeleteAction:
    """Delete components or a whole broker context."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "delete",
                help="Delete components and their routing",
                description=(
                    "Stop and remove components, their triggers targets and "
                    "secrets. With --broker the whole context is removed."
                ),
            ),
        )
        args.add_argument(
            "names",
            help="Names of the components to delete",
            nargs="*",
        )
        args.add_argument(
            "--broker",
            help="Delete this broker along with every component of its context",
            default=None,
        )
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        names: list[str],
        broker: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        if broker:
            if names:
                raise InputException("Specify either component names or --broker")
            orchestrator = common.build_orchestrator(config, broker)
            results = await orchestrator.delete_broker(broker)
        else:
            if not names:
                raise InputException("Specify the names of components to delete")
            orchestrator = common.build_orchestrator(config)
            results = await orchestrator.delete(names)
        common.print_results(results, output)
