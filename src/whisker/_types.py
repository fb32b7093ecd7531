"""Shared type definitions for whisker."""

from collections.abc import Callable, Mapping
from typing import Any, Literal

# Mode of operation
type WhiskerMode = Literal["dev", "serve"]

# Unique id of one rendered component instance
type InstanceID = str

# Unique id of one open SSE connection
type ConnectionID = str

# Parameters sent with an action request
type ActionParams = Mapping[str, Any]

# Lifecycle of a component instance
type InstanceStatus = Literal["pending", "active", "retired"]

# Loads a resource by key; returns None when it no longer exists
type ResourceLoader = Callable[[str], Any]

# Resolves the viewer context for an inbound chirp request
type ViewerResolver = Callable[[Any], Any]
