"""tm-local get action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast, Any

from tm_local.schema import Category, FileSchemaProvider, list_kinds

from . import common
from .format import formatter


_LOGGER = logging.getLogger(__name__)


class GetStatusAction:
    """Get the declared resources and their containers."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "status",
                aliases=["components"],
                help="Get the declared resources and their container state",
                description="Print the resources of the context and their container state",
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
        data = [status.to_dict() for status in await orchestrator.status()]
        if not data and output == "table":
            print(f"No resources declared in context {orchestrator.broker}")
            return
        cols = ["name", "kind", "category", "state", "host_port"]
        formatter(output, cols).print(data)


class GetTriggersAction:
    """Get the triggers of the broker."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "triggers",
                aliases=["trigger"],
                help="Get the triggers of the broker",
                description="Print the routing table of the broker",
            ),
        )
        args.add_argument(
            "--target",
            help="Only show triggers delivering to this component",
            default=None,
        )
        common.add_common_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        target: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        orchestrator = common.build_orchestrator(config)
        if target:
            triggers = await orchestrator.triggers.list_triggers_for_target(target)
        else:
            triggers = await orchestrator.triggers.list_triggers()
        if output != "table":
            formatter(output).print([trigger.to_dict() for trigger in triggers])
            return
        results: list[dict[str, Any]] = []
        for trigger in triggers:
            results.append(
                {
                    "name": trigger.name,
                    "type": trigger.event_type or "*",
                    "targets": [t.component or t.url for t in trigger.targets],
                }
            )
        if not results:
            print("No triggers found")
            return
        formatter(output, ["name", "type", "targets"]).print(results)


class GetKindsAction:
    """Get the component kinds of a category."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> None:
        """Register the subparser commands."""
        for category in (Category.SOURCE, Category.TARGET):
            args = cast(
                ArgumentParser,
                subparsers.add_parser(
                    f"{category}s",
                    help=f"Get the available {category} kinds",
                    description=f"Print the {category} kinds of the adapter version",
                ),
            )
            common.add_common_flags(args)
            common.add_output_flags(args)
            args.set_defaults(cls=cls, category=category)

    async def run(  # type: ignore[no-untyped-def]
        self,
        category: Category,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        kinds = list_kinds(FileSchemaProvider(config.schema_cache()), category)
        formatter(output, ["kind"]).print([{"kind": kind} for kind in kinds])


class GetAction:
    """tm-local get action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "get",
                help="Print information about the broker context",
                description="Print information about components, triggers and kinds",
            ),
        )
        subcmds = args.add_subparsers(
            title="Available commands",
            required=True,
        )
        GetStatusAction.register(subcmds)
        GetTriggersAction.register(subcmds)
        GetKindsAction.register(subcmds)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        # No-op given subcommands are always the dispatch target
