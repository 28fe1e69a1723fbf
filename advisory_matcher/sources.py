"""
File-backed collaborators: advisory directories, graph and package list files.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Mapping, Tuple

from tqdm import tqdm

from .errors import GraphError, LoadError
from .graph import GraphEntry, entries_from_records
from .models import PackageId
from .osv import osv_to_record


logger = logging.getLogger(__name__)


def _read_json(path: Path, error_cls) -> Any:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise error_cls(f"cannot read {path}: {e}") from e


class DirectoryAdvisorySource:
    """Read every ``*.json`` advisory below a database directory.

    A file holds one record or a list of records. OSV-format records
    (recognized by their ``affected`` key) are converted on the way in.
    """

    def __init__(self, db_dir: Path, show_progress: bool = True):
        self.db_dir = Path(db_dir)
        self.show_progress = show_progress

    def records(self) -> List[Mapping[str, Any]]:
        if not self.db_dir.is_dir():
            raise LoadError(f"advisory database {self.db_dir} is not a directory")

        json_files = sorted(self.db_dir.rglob("*.json"))
        logger.info("Reading %d advisory files from %s", len(json_files), self.db_dir)

        records: List[Mapping[str, Any]] = []
        for json_file in tqdm(json_files, desc="Loading advisories", disable=not self.show_progress):
            data = _read_json(json_file, LoadError)
            items = data if isinstance(data, list) else [data]
            for item in items:
                if isinstance(item, Mapping) and "affected" in item:
                    logger.debug("Converting OSV record %s", item.get("id"))
                    item = osv_to_record(item)
                records.append(item)
        return records


class JsonGraphSource:
    """Graph entries from a JSON list, or an object with a ``packages`` list."""

    def __init__(self, path: Path, default_ecosystem: str):
        self.path = Path(path)
        self.default_ecosystem = default_ecosystem

    def entries(self) -> List[GraphEntry]:
        data = _read_json(self.path, GraphError)
        if isinstance(data, Mapping):
            data = data.get("packages")
        if not isinstance(data, list):
            raise GraphError(f"{self.path}: expected a list of dependency entries")
        return entries_from_records(data, self.default_ecosystem)


class JsonPackageListSource:
    """Packages recovered from binaries: a JSON list of name/version objects."""

    def __init__(self, path: Path, default_ecosystem: str):
        self.path = Path(path)
        self.default_ecosystem = default_ecosystem

    def packages(self) -> List[Tuple[PackageId, str]]:
        data = _read_json(self.path, GraphError)
        if not isinstance(data, list):
            raise GraphError(f"{self.path}: expected a list of packages")
        packages = []
        for index, item in enumerate(data):
            if not isinstance(item, Mapping) or not item.get("name") or not item.get("version"):
                raise GraphError(f"{self.path}: package {index} needs a name and a version")
            ecosystem = item.get("ecosystem") or self.default_ecosystem
            if not all(isinstance(value, str) for value in (item["name"], item["version"], ecosystem)):
                raise GraphError(f"{self.path}: package {index} has a non-string name, version or ecosystem")
            packages.append((PackageId(ecosystem, item["name"]), item["version"]))
        return packages
