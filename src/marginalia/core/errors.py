"""Error kinds shared by the codec, the paste classifier and the suggestion engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MALFORMED_METADATA = "malformed-metadata"
UNTERMINATED_INLINE_SYNTAX = "unterminated-inline-syntax"
UNRESOLVED_REFERENCE = "unresolved-reference"
MISSING_REQUIRED_ATTRIBUTE = "missing-required-attribute"
ASYNC_LOOKUP_FAILURE = "async-lookup-failure"


class MarginaliaError(Exception):
    """Base class for errors raised by marginalia."""


class StructureError(MarginaliaError, ValueError):
    """A document tree invariant was violated (e.g. a block inside inline content).

    This is the only condition the core propagates as a hard failure: it points
    at a programming error in whoever built the node, not at bad input text.
    """


class ConfigError(MarginaliaError):
    """The configuration file exists but cannot be read."""


@dataclass
class Issue:
    """A recovered, non-fatal problem surfaced to the caller."""

    kind: str  # one of the *_METADATA / *_SYNTAX / ... constants above
    message: str
    node: Any = None  # offending node, when there is one

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "node": getattr(self.node, "kind", None),
        }
