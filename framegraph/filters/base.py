"""
Base classes for filter kinds.

A filter kind is a Filter subclass whose FilterMetadata declares its ports,
accepted options and role in the graph. The engine never looks inside a
filter: it hands frames to filter_frame() and moves whatever the filter
emits along the node's output links.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from framegraph.core.errors import InitializationError, ProcessingError
from framegraph.core.frame import Frame, MediaType

if TYPE_CHECKING:
    from framegraph.core.node import FilterNode

logger = logging.getLogger(__name__)


class FilterRole(Enum):
    """Where a filter sits in the graph."""
    SOURCE = "source"
    SINK = "sink"
    FILTER = "filter"


@dataclass(frozen=True)
class PortSpec:
    """An input or output port declared by a filter kind."""
    name: str
    media_type: MediaType
    optional: bool = False


@dataclass(frozen=True)
class OptionSpec:
    """An accepted option: string parser, default value and help text."""
    parse: Callable[[str], Any] = str
    default: Any = None
    help: str = ""


@dataclass
class FilterMetadata:
    """Metadata describing a filter kind."""
    name: str
    description: str = ""
    role: FilterRole = FilterRole.FILTER
    inputs: tuple[PortSpec, ...] = ()
    outputs: tuple[PortSpec, ...] = ()
    options: dict[str, OptionSpec] = field(default_factory=dict)

    @property
    def nb_inputs(self) -> int:
        return len(self.inputs)

    @property
    def nb_outputs(self) -> int:
        return len(self.outputs)


# ==================== Option parsers ====================

def parse_bool(value: str) -> bool:
    """Parse "1/0", "true/false", "yes/no", "on/off"."""
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: '{value}'")


def parse_non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise ValueError(f"must be >= 0, got {number}")
    return number


def parse_float_range(low: float, high: float) -> Callable[[str], float]:
    """Build a parser accepting floats in [low, high]."""
    def parse(value: str) -> float:
        number = float(value)
        if not low <= number <= high:
            raise ValueError(f"must be within [{low}, {high}], got {number}")
        return number
    return parse


def parse_choice(*choices: str) -> Callable[[str], str]:
    """Build a parser accepting one of a fixed set of strings."""
    def parse(value: str) -> str:
        if value not in choices:
            raise ValueError(f"must be one of {', '.join(choices)}, got '{value}'")
        return value
    return parse


def parse_format_list(value: str) -> tuple[str, ...]:
    """Parse a "|"-separated format list such as "rgb24|gray"."""
    return tuple(part.strip() for part in value.split("|") if part.strip())


class Filter(ABC):
    """
    Base class for all filter kinds.

    One instance is created per node, when the node is initialized, with
    the node's parsed options. The instance then receives frames through
    filter_frame() and sends results with node.emit().
    """

    # Override in subclasses
    metadata: FilterMetadata = FilterMetadata(name="base")

    def __init__(self, options: Optional[dict[str, Any]] = None):
        self._options = {key: spec.default for key, spec in self.metadata.options.items()}
        self._options.update(options or {})

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def role(self) -> FilterRole:
        return self.metadata.role

    @property
    def options(self) -> dict[str, Any]:
        return self._options

    @classmethod
    def parse_options(cls, raw: dict[str, str]) -> dict[str, Any]:
        """
        Convert stored string options into typed values.

        Raises:
            InitializationError: Naming the first unknown or malformed option
        """
        parsed: dict[str, Any] = {}
        for key, value in raw.items():
            spec = cls.metadata.options.get(key)
            if spec is None:
                raise InitializationError(
                    f"Option '{key}' not found for filter kind '{cls.metadata.name}'",
                    option=key,
                )
            try:
                parsed[key] = spec.parse(value)
            except (TypeError, ValueError) as e:
                raise InitializationError(
                    f"Invalid value '{value}' for option '{key}': {e}",
                    option=key,
                ) from e
        return parsed

    def init(self) -> None:
        """
        Validate the option combination and prepare internal state.
        Raise InitializationError to reject the node.
        """

    def uninit(self) -> None:
        """Release internal state. Called once when the node is released."""

    @abstractmethod
    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        """
        Process one input frame.

        Args:
            port: Input port the frame arrived on
            frame: The frame, now owned by this filter
            node: The owning node; use node.emit(port, frame) for output
        """
        pass

    def wanted_inputs(self, node: FilterNode) -> list[int]:
        """
        Input ports this filter needs a frame on to make progress.
        Defaults to every port that has not ended.
        """
        return [port for port in range(node.nb_inputs) if not node.input_ended(port)]

    def end_of_stream(self, port: int, node: FilterNode) -> None:
        """Called once when an input port has delivered its last frame."""

    def flush(self, node: FilterNode) -> None:
        """Called once when every input has ended; emit anything still buffered."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


class SourceFilter(Filter):
    """
    Base class for source kinds.

    Sources have no input ports: frames enter through FilterGraph.push()
    and reach filter_frame() on port 0 once the graph asks for them.
    """

    metadata = FilterMetadata(name="base_source", role=FilterRole.SOURCE)

    @property
    def queue_size(self) -> Optional[int]:
        """Queue capacity for pushed frames, None to use the graph default."""
        return self._options.get("queue_size") or None

    def check_frame(self, frame: Frame) -> None:
        """Raise ProcessingError if the frame doesn't match the source parameters."""

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        expected = self.metadata.outputs[0].media_type
        if frame.media_type is not expected:
            raise ProcessingError(
                f"Source '{node.name}' expects {expected.value} frames, got {frame.media_type.value}"
            )
        self.check_frame(frame)
        node.emit(0, frame)


class SinkFilter(Filter):
    """
    Base class for sink kinds.

    A sink keeps the last frame it received in one reusable slot and hands
    out independent copies of it, so callers can mutate what they pull
    without touching sink state.
    """

    metadata = FilterMetadata(name="base_sink", role=FilterRole.SINK)

    def __init__(self, options: Optional[dict[str, Any]] = None):
        super().__init__(options)
        self._slot: Optional[Frame] = None

    def accepted_formats(self) -> tuple[str, ...]:
        """Formats this sink accepts, empty for any."""
        return ()

    def filter_frame(self, port: int, frame: Frame, node: FilterNode) -> None:
        formats = self.accepted_formats()
        if formats and frame.format not in formats:
            raise ProcessingError(
                f"Sink '{node.name}' does not accept format '{frame.format}' "
                f"(accepts {', '.join(formats)})"
            )
        self._slot = frame

    def take(self) -> Frame:
        """Return a copy of the slot; the slot itself is overwritten on the next pull."""
        if self._slot is None:
            raise ProcessingError("Sink slot is empty")
        return self._slot.clone()

    def uninit(self) -> None:
        self._slot = None
