"""
Match an advisory store against a resolved dependency graph.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from .advisories import Advisory, AdvisoryStore
from .cvss import CvssScore, score as score_cvss
from .graph import DependencyGraph
from .models import DependencyNode, Finding


logger = logging.getLogger(__name__)


class TracePaths(str, Enum):
    """How many dependency paths to attach to each finding."""

    NONE = "none"
    SHORTEST = "shortest"
    ALL = "all"


@dataclass(frozen=True)
class MatchOptions:
    """Matching configuration.

    Attributes:
        include_cvss: Score each matched advisory's CVSS vector
        trace_paths: Dependency paths to attach to findings
        ignore_list: Advisory ids or aliases to leave out of the results
        max_paths: Upper bound on paths per finding with ``TracePaths.ALL``
        workers: Evaluate graph nodes on this many threads
    """

    include_cvss: bool = True
    trace_paths: TracePaths = TracePaths.NONE
    ignore_list: FrozenSet[str] = field(default_factory=frozenset)
    max_paths: int = 64
    workers: int = 1


def _finding_sort_key(finding: Finding) -> tuple:
    return (
        finding.package,
        -finding.advisory.date.toordinal(),
        finding.advisory.id,
        finding.version,
        finding.node.index,
    )


class Matcher:
    """Evaluate every graph node against the advisories for its package.

    The store and graph are only read. CVSS scores are computed once per
    advisory before any node is evaluated.
    """

    def __init__(
        self,
        store: AdvisoryStore,
        graph: DependencyGraph,
        options: Optional[MatchOptions] = None,
    ) -> None:
        self.store = store
        self.graph = graph
        self.options = options or MatchOptions()
        self._scores: Dict[str, Optional[CvssScore]] = {}

    def _is_ignored(self, advisory: Advisory) -> bool:
        ignore = self.options.ignore_list
        if not ignore:
            return False
        return advisory.id in ignore or any(alias in ignore for alias in advisory.aliases)

    def _precompute_scores(self) -> None:
        if not self.options.include_cvss:
            return
        for advisory in self.store:
            if advisory.cvss is not None and advisory.id not in self._scores:
                self._scores[advisory.id] = score_cvss(advisory.cvss)

    def _paths(self, node: DependencyNode) -> tuple:
        mode = self.options.trace_paths
        if mode == TracePaths.SHORTEST:
            path = self.graph.shortest_path(node.index)
            return (path,) if path else ()
        if mode == TracePaths.ALL:
            return self.graph.all_shortest_paths(node.index, self.options.max_paths)
        return ()

    def match_node(self, node: DependencyNode) -> List[Finding]:
        """Findings for a single graph node, in store order."""
        findings = []
        for advisory in self.store.lookup(node.package):
            if advisory.is_withdrawn:
                logger.debug("Skipping withdrawn advisory %s", advisory.id)
                continue
            if self._is_ignored(advisory):
                logger.debug("Ignoring advisory %s for %s", advisory.id, node)
                continue
            if not advisory.is_vulnerable(node.version):
                continue
            findings.append(Finding(
                advisory=advisory,
                node=node,
                cvss=self._scores.get(advisory.id),
                paths=self._paths(node),
            ))
        return findings

    def run(self) -> List[Finding]:
        """Match every node and return findings in deterministic order."""
        self._precompute_scores()
        nodes = self.graph.nodes
        findings: List[Finding] = []
        if self.options.workers > 1 and len(nodes) > 1:
            with ThreadPoolExecutor(max_workers=self.options.workers) as executor:
                for node_findings in executor.map(self.match_node, nodes):
                    findings.extend(node_findings)
        else:
            for node in nodes:
                findings.extend(self.match_node(node))

        findings.sort(key=_finding_sort_key)
        logger.info("Matched %d nodes: %d findings", len(nodes), len(findings))
        return findings


def match(
    store: AdvisoryStore,
    graph: DependencyGraph,
    options: Optional[MatchOptions] = None,
) -> List[Finding]:
    """Match ``store`` against ``graph``; see ``Matcher``."""
    return Matcher(store, graph, options).run()
