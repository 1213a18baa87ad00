#!/usr/bin/env python3
"""
Cargo workspace dependency inheritor - move repeated dependencies into [workspace.dependencies]

Every dependency declared `n` or more times across the members of a workspace is
added to the root manifest's [workspace.dependencies] table, and each member's
entry is rewritten to `dep = { workspace = true }` (keeping features, optional,
default-features and comments).

Commands:
  cargo-dep-inherit -w path/to/Cargo.toml -n 5                # Inherit deps used 5+ times
  cargo-dep-inherit -w Cargo.toml -n 3 --exclude-packages xtask
  cargo-dep-inherit -w Cargo.toml -n 2 --dry-run              # Preview without writing
  cargo dep-inherit -w Cargo.toml -n 2                        # As a cargo subcommand

Flags:
  --scan           Read [workspace] members directly instead of running `cargo metadata`
  --dry-run        Show what would be rewritten without making changes

This command edits your toml files, make sure they are committed or backed up.
"""

import argparse
import sys
import tomllib
from dataclasses import dataclass, field
from importlib import metadata as importlib_metadata
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from tomlkit.exceptions import TOMLKitError

from aggregator import (AggregatedRecord, aggregate_dependencies,
                        find_divergent_requirements, select_candidates)
from manifest_io import read_manifest, render_manifest, write_manifest
from manifest_rewriter import rewrite_manifest
from workspace_inventory import WorkspaceLoadError, load_workspace
from workspace_table import WorkspaceTableError, synthesize_workspace_table

DIST_NAME = 'cargo-dep-inherit'
SUBCOMMAND = 'dep-inherit'


def get_version():
    """Read version from pyproject.toml next to this file, then installed metadata"""
    pyproject_path = Path(__file__).parent / "pyproject.toml"
    if pyproject_path.exists():
        try:
            with open(pyproject_path, 'rb') as f:
                version = tomllib.load(f).get('project', {}).get('version')
            if version:
                return version
        except (OSError, tomllib.TOMLDecodeError):
            pass

    try:
        return importlib_metadata.version(DIST_NAME)
    except importlib_metadata.PackageNotFoundError:
        return 'unknown'

__version__ = get_version()


# ANSI palette for status lines
class Colors:
    RED = '\x1B[38;5;9m'
    GREEN = '\x1B[38;5;10m'
    YELLOW = '\x1B[33m'
    BLUE = '\x1B[36m'
    GRAY = '\x1B[38;5;242m'

    BOLD = '\x1B[1m'
    END = '\x1B[0m'


def warn(message):
    print(f"{Colors.YELLOW}⚠️  {message}{Colors.END}", file=sys.stderr)


def error(message):
    print(f"{Colors.RED}❌ {message}{Colors.END}", file=sys.stderr)


@dataclass
class InheritResult:
    records: Dict[str, AggregatedRecord]
    candidates: Set[str]
    rewritten: Dict[str, List[str]] = field(default_factory=dict)  # manifest -> locations
    added: List[str] = field(default_factory=list)  # names added to the root table
    failures: List[str] = field(default_factory=list)


# ============================================================================
# Phases
# ============================================================================

def update_member_manifest(manifest_path: Path, candidates: Set[str], dry_run: bool = False):
    """Rewrite one member manifest; returns (changed locations, error)"""
    document, err = read_manifest(manifest_path)
    if document is None:
        return None, err

    original = render_manifest(document)
    try:
        changed = rewrite_manifest(document, candidates)
    except (TOMLKitError, ValueError) as e:
        return None, f"could not rewrite {manifest_path}: {e}"
    if not changed or dry_run:
        return changed, None

    _, err = write_manifest(manifest_path, document, original=original)
    if err:
        return None, err
    return changed, None


def update_workspace_manifest(root_manifest: Path, records: Dict[str, AggregatedRecord], threshold: int,
                              dry_run: bool = False):
    """Merge candidates into the root [workspace.dependencies]; returns (added names, error)"""
    document, err = read_manifest(root_manifest)
    if document is None:
        return None, f"failed to update workspace definition: {err}"

    original = render_manifest(document)
    try:
        added = synthesize_workspace_table(document, records, threshold)
    except (WorkspaceTableError, TOMLKitError, ValueError) as e:
        return None, f"failed to update workspace definition {root_manifest}: {e}"

    if not added or dry_run:
        return added, None

    _, err = write_manifest(root_manifest, document, original=original)
    if err:
        return None, err
    return added, None


def format_report(records: Dict[str, AggregatedRecord], threshold: int) -> str:
    """One block per candidate: name, occurrence count and contributing manifests"""
    lines = []
    for name, record in records.items():
        if record.count < threshold:
            continue
        lines.append(f"==== Dependency: '{name}' ({record.count}) =====")
        for manifest in record.workspace_packages:
            lines.append(f"  - {manifest}")
    return '\n'.join(lines)


def inherit_dependencies(workspace_path, threshold: int, exclude_packages: Iterable[str] = (),
                         use_cargo: bool = True, dry_run: bool = False,
                         out=None) -> InheritResult:
    """
    Run the whole inheritance: aggregate, rewrite members, report, update the root.

    Member and root file failures are reported and skipped. Only a workspace
    that cannot be loaded stops the run (WorkspaceLoadError), and it does so
    before any file is touched.
    """
    out = out or sys.stdout
    workspace = load_workspace(workspace_path, use_cargo=use_cargo)
    print(f"{Colors.BLUE}🔍 Analyzing {len(workspace.packages)} workspace packages in "
          f"{Colors.BOLD}{workspace.root_dir}{Colors.END}", file=sys.stderr)

    records = aggregate_dependencies(workspace, exclude_packages)
    candidates = select_candidates(records, threshold)
    result = InheritResult(records=records, candidates=candidates)

    for name, reqs in find_divergent_requirements(records, candidates).items():
        warn(f"'{name}' is required as {', '.join(reqs)}; using '{records[name].version}' (last seen)")

    if candidates:
        for package in workspace.packages:
            changed, err = update_member_manifest(package.manifest_path, candidates, dry_run=dry_run)
            if err:
                error(err)
                result.failures.append(err)
                continue
            if changed:
                result.rewritten[str(package.manifest_path)] = changed
                verb = "Would update" if dry_run else "Updated"
                print(f"{Colors.GREEN}✅ {verb} {package.manifest_path} ({len(changed)} entries){Colors.END}",
                      file=sys.stderr)

    report = format_report(records, threshold)
    if report:
        print(report, file=out)

    if candidates:
        added, err = update_workspace_manifest(workspace.root_manifest, records, threshold, dry_run=dry_run)
        if err:
            error(err)
            result.failures.append(err)
        else:
            result.added = added
            if added:
                verb = "Would add" if dry_run else "Added"
                print(f"{Colors.GREEN}✅ {verb} {len(added)} entries to [workspace.dependencies] in "
                      f"{workspace.root_manifest}{Colors.END}", file=sys.stderr)
    else:
        print(f"{Colors.GRAY}No dependency occurs {threshold} or more times{Colors.END}", file=sys.stderr)

    if dry_run:
        print(f"{Colors.YELLOW}🔍 DRY-RUN: no files were changed{Colors.END}", file=sys.stderr)

    return result


# ============================================================================
# CLI
# ============================================================================

class VersionAction(argparse.Action):
    """Print the version and exit."""

    def __call__(self, parser, namespace, values, option_string=None):
        print(f"{DIST_NAME} {__version__}")
        parser.exit()


def threshold_type(value):
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError("number must be zero or greater")
    return number


def build_parser():
    parser = argparse.ArgumentParser(
        prog=DIST_NAME,
        description='Inherit dependencies from the workspace if they occur n or more times in it.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
EXAMPLES:
  cargo-dep-inherit -w Cargo.toml -n 5
  cargo-dep-inherit -w Cargo.toml -n 3 --exclude-packages xtask --exclude-packages bench
  cargo dep-inherit -w Cargo.toml -n 2 --dry-run
        ''')

    parser.add_argument('--version', action=VersionAction, nargs=0)
    parser.add_argument('-w', '--workspace-path', type=Path, required=True,
                        help='Full path to the Cargo.toml file that defines the rust workspace')
    parser.add_argument('-n', '--number', type=threshold_type, required=True,
                        help="If a dependency is used n or more times, add the 'workspace = true' key value to it")
    parser.add_argument('--exclude-packages', action='append', default=[], metavar='NAME',
                        help='Exclude a workspace package (its [package] name) from being counted; repeatable')
    parser.add_argument('--scan', action='store_true',
                        help='Discover members from [workspace] members instead of running cargo metadata')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be updated without making changes')
    return parser


def main(argv: Optional[List[str]] = None):
    argv = list(sys.argv[1:] if argv is None else argv)
    # `cargo dep-inherit ...` runs us as `cargo-dep-inherit dep-inherit ...`
    if argv and argv[0] == SUBCOMMAND:
        argv = argv[1:]

    args = build_parser().parse_args(argv)

    try:
        inherit_dependencies(
            args.workspace_path,
            args.number,
            exclude_packages=args.exclude_packages,
            use_cargo=not args.scan,
            dry_run=args.dry_run,
        )
    except WorkspaceLoadError as e:
        error(f"Could not load workspace: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}⚠️  Operation interrupted by user{Colors.END}", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
