"""Live layer — registry, subscriptions, fan-out and actions.

Flow::

    resource code -> ChangeNotifier -> dispatch shard -> Dispatcher
                                                            |
                           ResourceRegistry.subscribers_of  v
                                            render + push to each Connection
"""

from whisker.live.actions import ActionResult, ActionRouter
from whisker.live.component import ActionContext, Component, ComponentCatalog, action
from whisker.live.connections import Connection, ConnectionHub, Push
from whisker.live.dispatcher import Dispatcher, DispatchReport
from whisker.live.identity import ResourceIdentity, ResourceTypes, identity_of
from whisker.live.instance import ComponentInstance, LocalState, StateField, ViewerContext
from whisker.live.notifier import ChangeNotifier
from whisker.live.registry import ResourceRegistry
from whisker.live.rendering import ComponentRenderer
from whisker.live.subscriptions import Registration, SubscriptionManager

__all__ = [
    "ActionContext",
    "ActionResult",
    "ActionRouter",
    "ChangeNotifier",
    "Component",
    "ComponentCatalog",
    "ComponentInstance",
    "ComponentRenderer",
    "Connection",
    "ConnectionHub",
    "DispatchReport",
    "Dispatcher",
    "LocalState",
    "Push",
    "Registration",
    "ResourceIdentity",
    "ResourceRegistry",
    "ResourceTypes",
    "StateField",
    "SubscriptionManager",
    "ViewerContext",
    "action",
    "identity_of",
]
