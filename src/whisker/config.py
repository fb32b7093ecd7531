"""Whisker configuration.

WhiskerConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from whisker._errors import ConfigError


@dataclass(frozen=True, slots=True)
class WhiskerConfig:
    """Configuration for a Whisker application.

    Attributes:
        root: Project root directory (contains templates/, static/).
              Always resolved to an absolute path on construction.
        host: Bind address for dev/serve modes.
        port: Bind port for dev/serve modes.
        workers: Number of Pounce workers (0 = auto-detect).
        templates_dir: Directory containing Kida component templates.
        static_dir: Directory containing static assets.
        endpoint_prefix: URL prefix for the live endpoints (events, register,
            deregister, action, stats).
        dispatch_shards: Number of single-thread dispatch executors.  A
            resource always lands on the same shard, so fan-out passes for
            one resource run in notification order.
        queue_size: Per-connection push backlog before pushes are dropped.
        pending_limit: Mounted-but-unregistered instances kept for pickup.
        retired_limit: Retired instance ids remembered to refuse resurrection.
        inject_client: Inject the client script into HTML responses.
        debug: Show exception details in degraded fragments.
        max_events: Observability ring buffer size.

    """

    root: Path = field(default_factory=Path.cwd)
    host: str = "127.0.0.1"
    port: int = 3000
    workers: int = 0
    templates_dir: str = "templates"
    static_dir: str = "static"
    endpoint_prefix: str = "/__whisker"
    dispatch_shards: int = 4
    queue_size: int = 256
    pending_limit: int = 10_000
    retired_limit: int = 50_000
    inject_client: bool = True
    debug: bool = False
    max_events: int = 10_000

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())

        prefix = "/" + self.endpoint_prefix.strip("/")
        object.__setattr__(self, "endpoint_prefix", prefix)

        for name in ("dispatch_shards", "queue_size", "pending_limit", "retired_limit"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                msg = f"{name} must be a positive integer, got {value!r}"
                raise ConfigError(msg)

    @property
    def templates_path(self) -> Path:
        """Absolute path to templates directory."""
        return self.root / self.templates_dir

    @property
    def static_path(self) -> Path:
        """Absolute path to static assets directory."""
        return self.root / self.static_dir

    def endpoint(self, name: str) -> str:
        """URL of a live endpoint, e.g. ``endpoint("events")``."""
        return f"{self.endpoint_prefix}/{name}"
