"""Whisker error hierarchy.

All whisker-specific errors inherit from WhiskerError for easy catching.
"""


class WhiskerError(Exception):
    """Base error for all whisker operations."""


class ConfigError(WhiskerError):
    """Invalid or missing configuration."""


class RegistrationError(WhiskerError):
    """A registration request was malformed or refers to a retired instance."""


class NotFound(WhiskerError):
    """The resource a component is bound to cannot be located."""

    def __init__(self, identity: object) -> None:
        self.identity = identity
        super().__init__(f"Resource not found: {identity}")


class InstanceNotFound(WhiskerError):
    """The component instance is unknown or retired.

    Clients treat this as "reload this page region", never as a retry.
    """

    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        super().__init__(f"Component instance not found: {instance_id}")


class UnknownAction(WhiskerError):
    """The action name is not exposed by the instance's component type."""

    def __init__(self, component_type: str, action: str) -> None:
        self.component_type = component_type
        self.action = action
        super().__init__(f"{component_type} has no action {action!r}")


class HandlerError(WhiskerError):
    """An action handler raised.

    Carries the degraded fragment that replaces the component on the client.
    """

    def __init__(self, instance_id: str, action: str, fragment: str) -> None:
        self.instance_id = instance_id
        self.action = action
        self.fragment = fragment
        super().__init__(f"Action {action!r} failed on instance {instance_id}")


class RenderError(WhiskerError):
    """A component template failed to render."""


class ConnectionClosed(WhiskerError):
    """The transport channel behind a component instance is gone."""
