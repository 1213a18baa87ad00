"""Workspace member discovery.

Produces the list of member packages of a Cargo workspace together with every
dependency they declare, either from ``cargo metadata`` or, when cargo is not
available, by scanning the ``[workspace] members`` globs directly.
"""

import json
import os
import subprocess
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

# kind as reported by cargo metadata -> manifest table names (canonical first, then legacy alias)
DEPENDENCY_TABLES = {
    'normal': ('dependencies',),
    'dev': ('dev-dependencies', 'dev_dependencies'),
    'build': ('build-dependencies', 'build_dependencies'),
}


class WorkspaceLoadError(Exception):
    """The root manifest or the package graph could not be loaded."""


@dataclass
class DependencyDeclaration:
    name: str
    req: str = '*'
    kind: str = 'normal'  # "normal", "dev" or "build"
    target: Optional[str] = None  # cfg expression or target triple
    uses_default_features: bool = True
    path: Optional[str] = None  # absolute path of a local override


@dataclass
class Package:
    name: str
    manifest_path: Path
    dependencies: List[DependencyDeclaration] = field(default_factory=list)


@dataclass
class Workspace:
    root_manifest: Path
    root_dir: Path
    packages: List[Package] = field(default_factory=list)


def cargo_binary() -> str:
    """cargo sets $CARGO when it runs a subcommand"""
    return os.environ.get('CARGO', 'cargo')


def load_workspace(root_manifest, use_cargo: bool = True) -> Workspace:
    """Load the member packages of the workspace rooted at ``root_manifest``.

    Raises WorkspaceLoadError if the root manifest is missing or the members
    cannot be enumerated.
    """
    root_manifest = Path(root_manifest)
    if not root_manifest.is_file():
        raise WorkspaceLoadError(f"workspace manifest not found: {root_manifest}")

    root_manifest = root_manifest.resolve()
    if use_cargo:
        metadata = run_cargo_metadata(root_manifest)
        return workspace_from_metadata(root_manifest, metadata)
    return scan_workspace(root_manifest)


# ============================================================================
# cargo metadata
# ============================================================================

def run_cargo_metadata(root_manifest: Path) -> dict:
    """Run `cargo metadata` for the workspace and return the parsed JSON"""
    cmd = [cargo_binary(), 'metadata', '--format-version', '1', '--no-deps',
           '--manifest-path', str(root_manifest)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError:
        raise WorkspaceLoadError(f"cargo executable not found: {cmd[0]}")
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or '').strip()
        raise WorkspaceLoadError(f"cargo metadata failed for {root_manifest}: {stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise WorkspaceLoadError(f"cargo metadata returned invalid JSON: {e}")


def workspace_from_metadata(root_manifest: Path, metadata: dict) -> Workspace:
    """Build the Workspace from `cargo metadata --format-version 1` output"""
    try:
        member_ids = set(metadata['workspace_members'])
        root_dir = Path(metadata.get('workspace_root') or root_manifest.parent)
        packages = []
        # keep cargo's package order so last-write-wins stays deterministic
        for pkg in metadata['packages']:
            if pkg['id'] not in member_ids:
                continue
            packages.append(Package(
                name=pkg['name'],
                manifest_path=Path(pkg['manifest_path']),
                dependencies=[_declaration_from_metadata(dep) for dep in pkg.get('dependencies', [])],
            ))
    except (KeyError, TypeError) as e:
        raise WorkspaceLoadError(f"unexpected cargo metadata layout: missing {e}")

    return Workspace(root_manifest=root_manifest, root_dir=root_dir, packages=packages)


def _declaration_from_metadata(dep: dict) -> DependencyDeclaration:
    # `foo = { package = "bar" }` is reported as name "bar", rename "foo"; manifests key on "foo"
    return DependencyDeclaration(
        name=dep.get('rename') or dep['name'],
        req=dep.get('req') or '*',
        kind=dep.get('kind') or 'normal',
        target=dep.get('target'),
        uses_default_features=dep.get('uses_default_features', True),
        path=dep.get('path'),
    )


# ============================================================================
# Manifest scanning (no cargo required)
# ============================================================================

def _load_toml(path: Path) -> dict:
    try:
        with open(path, 'rb') as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise WorkspaceLoadError(f"could not load {path}: {e}")


def find_member_manifests(root_dir: Path, workspace_section: dict) -> List[Path]:
    """Expand `members` globs, dropping `exclude` entries and non-packages"""
    excluded = {(root_dir / pattern).resolve() for pattern in workspace_section.get('exclude', [])}

    manifests = []
    for pattern in workspace_section.get('members', []):
        for member_dir in sorted(root_dir.glob(pattern)):
            member_dir = member_dir.resolve()
            if member_dir in excluded:
                continue
            manifest = member_dir / 'Cargo.toml'
            if manifest.is_file() and manifest not in manifests:
                manifests.append(manifest)
    return manifests


def scan_workspace(root_manifest: Path) -> Workspace:
    """Enumerate members and their declarations by reading the manifests"""
    root_manifest = Path(root_manifest).resolve()
    root_dir = root_manifest.parent
    root_data = _load_toml(root_manifest)

    workspace_section = root_data.get('workspace')
    if not isinstance(workspace_section, dict):
        raise WorkspaceLoadError(f"{root_manifest} has no [workspace] section")

    inherited = workspace_section.get('dependencies', {})
    if not isinstance(inherited, dict):
        inherited = {}

    manifests = []
    if 'package' in root_data:
        manifests.append(root_manifest)
    manifests.extend(m for m in find_member_manifests(root_dir, workspace_section) if m != root_manifest)

    packages = []
    for manifest in manifests:
        data = root_data if manifest == root_manifest else _load_toml(manifest)
        package = data.get('package', {})
        if not isinstance(package, dict) or 'name' not in package:
            raise WorkspaceLoadError(f"{manifest} has no [package] name")
        packages.append(Package(
            name=package['name'],
            manifest_path=manifest,
            dependencies=collect_declarations(data, manifest.parent, root_dir, inherited),
        ))

    return Workspace(root_manifest=root_manifest, root_dir=root_dir, packages=packages)


def collect_declarations(data: dict, package_dir: Path, root_dir: Path,
                         inherited: Optional[Dict] = None) -> List[DependencyDeclaration]:
    """Every declaration of a parsed manifest, top level first then per target"""
    inherited = inherited or {}
    declarations = []

    scopes = [(None, data)]
    targets = data.get('target', {})
    if isinstance(targets, dict):
        scopes.extend((cfg, section) for cfg, section in targets.items() if isinstance(section, dict))

    for target, section in scopes:
        for kind, table_names in DEPENDENCY_TABLES.items():
            for table_name in table_names:
                table = section.get(table_name)
                if not isinstance(table, dict):
                    continue
                for name, spec in table.items():
                    decl = _declaration_from_manifest(name, spec, kind, target, package_dir, root_dir, inherited)
                    if decl is not None:
                        declarations.append(decl)
    return declarations


def _declaration_from_manifest(name, spec, kind, target, package_dir, root_dir, inherited):
    if isinstance(spec, str):
        return DependencyDeclaration(name=name, req=spec, kind=kind, target=target)
    if not isinstance(spec, dict):
        return None

    base_dir = package_dir
    if spec.get('workspace') is True:
        # inherited entries take version/path from [workspace.dependencies]
        shared = inherited.get(name, {})
        if isinstance(shared, str):
            shared = {'version': shared}
        spec = {**shared, **spec}
        if 'path' in shared:
            base_dir = root_dir

    default_features = spec.get('default-features', spec.get('default_features', True))
    path = spec.get('path')
    return DependencyDeclaration(
        name=name,
        req=spec.get('version') or '*',
        kind=kind,
        target=target,
        uses_default_features=bool(default_features),
        path=os.path.normpath(base_dir / path) if path else None,
    )
