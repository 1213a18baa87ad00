"""Maintain the root manifest's [workspace.dependencies] table."""

from typing import Dict, List

import tomlkit
from tomlkit.items import InlineTable

from aggregator import AggregatedRecord, select_candidates
from manifest_rewriter import is_table, inline_table
from version_utils import WILDCARD


class WorkspaceTableError(Exception):
    """The root manifest has a `workspace` or `workspace.dependencies` key that is not a table."""


def record_to_toml(record: AggregatedRecord):
    """
    Encode an aggregated record as a [workspace.dependencies] value.

    Local paths and disabled default features need an inline table
    (`{ version = "1.0", path = "crates/x", default-features = false }`, with
    the version left out for the "*" wildcard); everything else is the bare
    requirement string.
    """
    if record.path is None and not record.no_default_features:
        return tomlkit.string(record.version)

    entries = []
    if record.version != WILDCARD:
        entries.append(('version', record.version))
    if record.path is not None:
        entries.append(('path', record.path))
    if record.no_default_features:
        entries.append(('default-features', False))
    return inline_table(entries)


def find_workspace_dependencies(document):
    """Return the existing workspace.dependencies table, or None"""
    workspace = document.get('workspace')
    if workspace is None:
        return None
    if not is_table(workspace):
        raise WorkspaceTableError("`workspace` is not a table")

    dependencies = workspace.get('dependencies')
    if dependencies is None:
        return None
    if not is_table(dependencies):
        raise WorkspaceTableError("`workspace.dependencies` is not a table")
    return dependencies


def synthesize_workspace_table(document, records: Dict[str, AggregatedRecord], threshold: int) -> List[str]:
    """Add one workspace entry per candidate, returning the names added.

    An existing table is only ever extended: a name already present keeps its
    hand-written entry.
    """
    candidates = select_candidates(records, threshold)
    existing = find_workspace_dependencies(document)
    present = existing if existing is not None else {}
    entries = [(name, record_to_toml(records[name])) for name in sorted(candidates) if name not in present]
    if not entries:
        return []

    if existing is not None:
        for name, value in entries:
            existing[name] = value
        return [name for name, _ in entries]

    workspace = document.get('workspace')
    if isinstance(workspace, InlineTable):
        # `workspace = { members = [...] }` can only hold inline values
        workspace['dependencies'] = inline_table(entries)
    else:
        table = tomlkit.table()
        for name, value in entries:
            table[name] = value
        if workspace is None:
            workspace = tomlkit.table(is_super_table=True)
            workspace.append('dependencies', table)
            document.append('workspace', workspace)
        else:
            workspace['dependencies'] = table

    return [name for name, _ in entries]
