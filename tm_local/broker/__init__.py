"""Routing of events from the local broker to components.

The broker delivers events according to triggers held in a configuration
file of the context, see `RoutingTable`. The `TriggerEngine` applies trigger
changes to that file and mirrors them into the manifest.
"""

from .engine import TriggerEngine, commit_state, trigger_name
from .routing import BrokerConfigFile, RoutingTable

__all__ = [
    "BrokerConfigFile",
    "RoutingTable",
    "TriggerEngine",
    "commit_state",
    "trigger_name",
]
