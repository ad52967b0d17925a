"""tm-local trigger action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast

from tm_local.exceptions import TriggerNotFoundError
from tm_local.manifest import TriggerTarget

from . import common
from .format import formatter


_LOGGER = logging.getLogger(__name__)


class TriggerAction:
    """Create, update or delete a trigger of the broker."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "trigger",
                help="Route events of a type to a component",
                description=(
                    "Create or update a trigger. The filter is replaced by the "
                    "event type and the target is added unless already present."
                ),
            ),
        )
        args.add_argument("name", help="Name of the trigger")
        args.add_argument(
            "--event-type",
            help=(
                "Event type to route. A new trigger without it routes every "
                "event, an existing trigger keeps its filter when only a "
                "target is added"
            ),
            default=None,
        )
        args.add_argument(
            "--target",
            help="Running component that receives the events",
            default=None,
        )
        args.add_argument(
            "--delete",
            help="Delete the trigger",
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
        name: str,
        event_type: str | None,
        target: str | None,
        delete: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        config = common.load(**kwargs)
        orchestrator = common.build_orchestrator(config)
        if delete:
            await orchestrator.triggers.remove_trigger(name)
            print(f"Trigger {name} deleted")
            return
        trigger_target = None
        if target:
            trigger_target = TriggerTarget(
                url=await orchestrator.target_url(target),
                component=target,
                delivery_options=common.delivery_options(**kwargs),
            )
            if event_type is None:
                try:
                    existing = await orchestrator.triggers.lookup_trigger(name)
                except TriggerNotFoundError:
                    _LOGGER.debug("Trigger %s routes every event", name)
                else:
                    event_type = existing.event_type
        trigger = await orchestrator.triggers.upsert_trigger(
            name, event_type, trigger_target
        )
        data = [
            {
                "name": trigger.name,
                "type": trigger.event_type or "*",
                "targets": [t.component or t.url for t in trigger.targets],
            }
        ]
        if output != "table":
            data = [trigger.to_dict()]
        formatter(output, ["name", "type", "targets"]).print(data)
