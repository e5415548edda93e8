"""Pattern matched message routing used as the host for the gateway."""

from .patterns import PatternIndex, canonical, parse_pattern, pattern_value
from .router import (
    ActionContext,
    CallMeta,
    Delegate,
    MessageDefinition,
    MessageRouter,
    Reply,
    clean,
)

__all__ = [
    "ActionContext",
    "CallMeta",
    "Delegate",
    "MessageDefinition",
    "MessageRouter",
    "PatternIndex",
    "Reply",
    "canonical",
    "clean",
    "parse_pattern",
    "pattern_value",
]
