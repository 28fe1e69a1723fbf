"""
Core data models shared by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from .versions import Version

if TYPE_CHECKING:
    from .advisories import Advisory
    from .cvss import CvssScore


class Severity(str, Enum):
    """Qualitative severity band."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: str) -> "Severity":
        try:
            return cls(value.strip().lower())
        except (AttributeError, ValueError):
            raise ValueError(f"unknown severity: {value!r}") from None


@dataclass(frozen=True, order=True)
class PackageId:
    """A package identity within one ecosystem. Names are case-sensitive."""

    ecosystem: str
    name: str

    def __str__(self) -> str:
        return f"{self.ecosystem}/{self.name}"


@dataclass(frozen=True)
class DependencyNode:
    """A resolved package version in the dependency graph."""

    index: int
    package: PackageId
    version: Version
    node_id: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.package.name} {self.version}"


@dataclass(frozen=True)
class Finding:
    """One advisory matched against one resolved graph node."""

    advisory: "Advisory"
    node: DependencyNode
    cvss: Optional["CvssScore"] = None
    paths: Tuple[Tuple[DependencyNode, ...], ...] = ()

    @property
    def package(self) -> PackageId:
        return self.node.package

    @property
    def version(self) -> Version:
        return self.node.version

    @property
    def severity(self) -> Optional[Severity]:
        """CVSS-derived severity, falling back to the advisory's own rating."""
        if self.cvss is not None:
            return self.cvss.severity
        return self.advisory.severity

    @property
    def is_warning(self) -> bool:
        return self.advisory.informational is not None
