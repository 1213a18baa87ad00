"""Count dependency occurrences across the workspace and pick candidates."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from version_utils import normalize_requirement, requirements_diverge
from workspace_inventory import Workspace


@dataclass
class AggregatedRecord:
    """Workspace-wide view of one dependency name.

    ``version`` and ``path`` hold whatever the last visited declaration said;
    packages are walked in a stable order, so the result is deterministic.
    """
    count: int = 0
    workspace_packages: List[str] = field(default_factory=list)
    version: str = '*'
    path: Optional[str] = None  # relative to the workspace root
    no_default_features: bool = False
    requirements: List[str] = field(default_factory=list)


def workspace_relative_path(path, root_dir) -> str:
    """Express a local override relative to the workspace root, POSIX style"""
    rel = os.path.relpath(os.path.normpath(path), os.path.normpath(root_dir))
    return Path(rel).as_posix()


def aggregate_dependencies(workspace: Workspace, exclude_packages: Iterable[str] = ()) -> Dict[str, AggregatedRecord]:
    """
    Walk every declaration of every package once.

    Each declaration site is one occurrence: a crate listed under both
    [dependencies] and [dev-dependencies] of one package counts twice.
    Excluded packages contribute nothing.

    Returns:
        dict of dependency name -> AggregatedRecord, ordered by name
    """
    excluded = set(exclude_packages)
    records: Dict[str, AggregatedRecord] = {}

    for package in workspace.packages:
        if package.name in excluded:
            continue

        for dep in package.dependencies:
            record = records.setdefault(dep.name, AggregatedRecord())
            record.count += 1
            record.workspace_packages.append(str(package.manifest_path))
            record.version = normalize_requirement(dep.req)
            record.requirements.append(record.version)
            record.no_default_features |= not dep.uses_default_features
            record.path = workspace_relative_path(dep.path, workspace.root_dir) if dep.path else None

    return dict(sorted(records.items()))


def select_candidates(records: Dict[str, AggregatedRecord], threshold: int) -> Set[str]:
    """Names occurring at least ``threshold`` times"""
    return {name for name, record in records.items() if record.count >= threshold}


def find_divergent_requirements(records: Dict[str, AggregatedRecord], candidates: Set[str]) -> Dict[str, List[str]]:
    """Candidates whose contributors ask for different requirements.

    Only used for warnings; the last-seen requirement is still the one written.
    """
    divergent = {}
    for name in sorted(candidates):
        reqs = records[name].requirements
        if requirements_diverge(reqs):
            divergent[name] = list(dict.fromkeys(reqs))
    return divergent
