"""
Exceptions raised by the filter graph engine.

Every error carries structured attributes (node name, port, diagnostic code)
so callers can branch on them without parsing messages. Diagnostics are
logged at the point of failure; the attributes are for the caller.
"""

from __future__ import annotations

import errno
from typing import Optional


class FilterGraphError(Exception):
    """Base exception for all filter graph errors."""

    def __init__(self, message: str, node_name: Optional[str] = None):
        super().__init__(message)
        self.node_name = node_name


class AllocationError(FilterGraphError):
    """A graph or node could not be allocated (limits or resource exhaustion)."""


class UnknownFilterKind(FilterGraphError):
    """The requested filter kind is not present in the registry."""

    def __init__(self, kind: str):
        super().__init__(f"Unknown filter kind: '{kind}'")
        self.kind = kind


class InvalidState(FilterGraphError):
    """The operation is not valid in the current node or graph lifecycle state."""


class PortOutOfRange(FilterGraphError):
    """A port index is negative or not below the declared port count."""

    def __init__(self, node_name: str, direction: str, port: int, count: int):
        super().__init__(
            f"{direction} port {port} out of range for '{node_name}' "
            f"({count} {direction} port(s))",
            node_name=node_name,
        )
        self.direction = direction
        self.port = port
        self.count = count


class PortAlreadyLinked(FilterGraphError):
    """The port is already the endpoint of a link."""

    def __init__(self, node_name: str, direction: str, port: int):
        super().__init__(
            f"{direction} port {port} of '{node_name}' is already linked",
            node_name=node_name,
        )
        self.direction = direction
        self.port = port


class LinkRejected(FilterGraphError):
    """The link is topologically invalid (other graph, media type mismatch)."""


class ConfigurationError(FilterGraphError):
    """
    Topology validation failed when locking the graph.

    Attributes:
        diagnostics: Every problem found, one message per entry
    """

    def __init__(self, diagnostics: list[str]):
        summary = "; ".join(diagnostics) if diagnostics else "invalid graph"
        super().__init__(f"Graph configuration failed: {summary}")
        self.diagnostics = list(diagnostics)


class GraphNotConfigured(FilterGraphError):
    """Frames were pushed or pulled before the graph was configured."""


class StreamClosed(FilterGraphError):
    """A frame was pushed into a source that already signalled end-of-stream."""


class Backpressure(FilterGraphError):
    """
    The source queue is full.

    The push did not happen; pull downstream and retry.
    """

    def __init__(self, node_name: str, capacity: int):
        super().__init__(
            f"Source '{node_name}' queue is full ({capacity} frames)",
            node_name=node_name,
        )
        self.capacity = capacity


class InitializationError(FilterGraphError):
    """
    A node rejected its options or failed to initialize.

    Attributes:
        option: The rejected option key, or None when the node itself failed
    """

    def __init__(self, message: str, node_name: Optional[str] = None, option: Optional[str] = None):
        super().__init__(message, node_name=node_name)
        self.option = option


class ProcessingError(FilterGraphError):
    """
    A failure raised while frames propagate through the graph.

    Attributes:
        code: errno-style diagnostic code of the underlying failure
        fatal: Whether the graph lost a resource and can no longer run
    """

    def __init__(
        self,
        message: str,
        code: int = errno.EINVAL,
        node_name: Optional[str] = None,
        fatal: bool = False,
    ):
        super().__init__(message, node_name=node_name)
        self.code = code
        self.fatal = fatal
