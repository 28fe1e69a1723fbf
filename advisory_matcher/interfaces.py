"""
Interfaces for the collaborators that feed the engine.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Protocol, Tuple, runtime_checkable

from .graph import GraphEntry
from .models import PackageId


@runtime_checkable
class AdvisorySource(Protocol):
    """Supply raw advisory records for ``AdvisoryStore.load``."""

    def records(self) -> List[Mapping[str, Any]]:
        ...


@runtime_checkable
class GraphSource(Protocol):
    """Supply resolved dependency graph entries."""

    def entries(self) -> Iterable[GraphEntry]:
        ...


@runtime_checkable
class PackageListSource(Protocol):
    """Supply packages recovered from built binaries."""

    def packages(self) -> List[Tuple[PackageId, str]]:
        ...
