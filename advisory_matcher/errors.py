"""
Exception types raised by the matching engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class AdvisoryMatcherError(Exception):
    """Base class for all engine errors."""


class ParseErrorKind(str, Enum):
    """Why a version, range or CVSS vector string was rejected."""

    MALFORMED = "malformed"
    EMPTY_RANGE = "empty_range"


class ParseError(AdvisoryMatcherError, ValueError):
    """A single string failed to parse.

    Args:
        message: Human readable reason
        raw: The offending input string
        kind: Category of the failure
    """

    def __init__(
        self,
        message: str,
        raw: Optional[str] = None,
        kind: ParseErrorKind = ParseErrorKind.MALFORMED,
    ) -> None:
        self.raw = raw
        self.kind = kind
        if raw is not None:
            message = f"{message}: {raw!r}"
        super().__init__(message)


class LoadError(AdvisoryMatcherError):
    """The advisory store could not be built."""


class InvalidAdvisory(LoadError):
    """A raw advisory record failed validation, aborting the whole load."""

    def __init__(self, advisory_id: Optional[str], cause: str) -> None:
        self.advisory_id = advisory_id
        self.cause = cause
        super().__init__(f"invalid advisory {advisory_id or '<unknown>'}: {cause}")


class AdvisoryNotFound(AdvisoryMatcherError, LookupError):
    """No advisory is known under the requested id or alias."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"no advisory found for {identifier!r}")


class GraphError(AdvisoryMatcherError):
    """The dependency graph input is malformed."""
