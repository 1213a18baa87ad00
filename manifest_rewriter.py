"""Rewrite member manifests so repeated dependencies inherit from the workspace.

Works on tomlkit documents in place. Entries that are not candidates are never
touched, so their formatting and comments survive byte for byte.
"""

import re
from enum import Enum
from typing import Iterator, List, Set, Tuple

import tomlkit
from tomlkit.container import OutOfOrderTableProxy
from tomlkit.items import InlineTable, String, Table

from workspace_inventory import DEPENDENCY_TABLES

# keys the workspace entry provides
DROPPED_KEYS = ('version', 'path')

_BARE_KEY = re.compile(r'^[A-Za-z0-9_-]+$')


class DeclarationShape(Enum):
    BARE_STRING = 'bare-string'    # dep = "1.0"
    INLINE_TABLE = 'inline-table'  # dep = { version = "1.0" }
    TABLE = 'table'                # [dependencies.dep]
    OTHER = 'other'                # numbers, booleans, dates, arrays


def classify(value) -> DeclarationShape:
    if isinstance(value, String):
        return DeclarationShape.BARE_STRING
    if isinstance(value, InlineTable):
        return DeclarationShape.INLINE_TABLE
    if isinstance(value, (Table, OutOfOrderTableProxy)):
        return DeclarationShape.TABLE
    return DeclarationShape.OTHER


def is_table(value) -> bool:
    return isinstance(value, (Table, InlineTable, OutOfOrderTableProxy))


def _is_true(value) -> bool:
    return getattr(value, 'value', value) is True


def is_delegating(value) -> bool:
    """Already `{ workspace = true }` with nothing the workspace would provide"""
    return _is_true(value.get('workspace')) and not any(key in value for key in DROPPED_KEYS)


def inline_table(entries) -> InlineTable:
    """Build a `{ key = value, ... }` inline table with one space inside the braces"""
    table = tomlkit.inline_table()
    for key, value in entries:
        table.append(key, value)

    values = [item for key, item in table.value.body if key is not None]
    for item in values:
        item.trivia.indent = ''
        item.trivia.trail = ''
    if values:
        values[0].trivia.indent = ' '
        values[-1].trivia.trail = ' '
    return table


# ============================================================================
# One rule per declaration shape
# ============================================================================

def _rewrite_bare_string(table, key, value) -> bool:
    replacement = inline_table([('workspace', True)])
    # keep a trailing `# comment` on the line
    replacement.trivia.comment_ws = value.trivia.comment_ws
    replacement.trivia.comment = value.trivia.comment
    table[key] = replacement
    return True


def _rewrite_inline_table(table, key, value) -> bool:
    if is_delegating(value):
        return False

    kept = [(k, v) for k, v in value.items() if k not in DROPPED_KEYS and k != 'workspace']
    table[key] = inline_table([('workspace', True)] + kept)
    return True


def _rewrite_table(table, key, value) -> bool:
    if is_delegating(value):
        return False

    value['workspace'] = True
    for dropped in DROPPED_KEYS:
        if dropped in value:
            del value[dropped]
    return True


def _leave_untouched(table, key, value) -> bool:
    return False


REWRITE_RULES = {
    DeclarationShape.BARE_STRING: _rewrite_bare_string,
    DeclarationShape.INLINE_TABLE: _rewrite_inline_table,
    DeclarationShape.TABLE: _rewrite_table,
    DeclarationShape.OTHER: _leave_untouched,
}


# ============================================================================
# Traversal
# ============================================================================

def _quote(key: str) -> str:
    return key if _BARE_KEY.match(key) else f"'{key}'"


def dependency_tables(document) -> Iterator[Tuple[str, object]]:
    """Yield (dotted location, table) for every dependency table, root level first"""
    scopes = [('', document)]
    targets = document.get('target')
    if is_table(targets):
        for cfg, section in targets.items():
            if is_table(section):
                scopes.append((f"target.{_quote(cfg)}.", section))

    for prefix, section in scopes:
        for table_names in DEPENDENCY_TABLES.values():
            for table_name in table_names:
                table = section.get(table_name)
                if is_table(table):
                    yield prefix + table_name, table


def rewrite_dependency_table(table, candidates: Set[str]) -> List[str]:
    """Rewrite candidate entries of one dependency table, returning their names"""
    rewritten = []
    for key in list(table.keys()):
        if key not in candidates:
            continue
        value = table[key]
        rule = REWRITE_RULES[classify(value)]
        if rule(table, key, value):
            rewritten.append(key)
    return rewritten


def rewrite_manifest(document, candidates: Set[str]) -> List[str]:
    """
    Convert every candidate dependency of a member manifest to workspace form.

    Covers [dependencies], [dev-dependencies], [build-dependencies] (and their
    legacy underscore spellings) at the root and under every [target.<cfg>].

    Returns:
        Dotted locations of the entries that changed
    """
    if not candidates:
        return []

    changed = []
    for location, table in dependency_tables(document):
        for name in rewrite_dependency_table(table, candidates):
            changed.append(f"{location}.{_quote(name)}")
    return changed
