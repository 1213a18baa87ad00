"""Tests for aggregator module."""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from aggregator import (AggregatedRecord, aggregate_dependencies, find_divergent_requirements,
                        select_candidates, workspace_relative_path)
from workspace_inventory import DependencyDeclaration, Package, Workspace

ROOT = Path("/ws")


def package(name, *deps):
    return Package(name=name, manifest_path=ROOT / name / "Cargo.toml", dependencies=list(deps))


def workspace(*packages):
    return Workspace(root_manifest=ROOT / "Cargo.toml", root_dir=ROOT, packages=list(packages))


class TestAggregateDependencies:
    """Test the occurrence walk."""

    def test_counts_and_contributors(self):
        ws = workspace(
            package("a", DependencyDeclaration("serde", "1.0")),
            package("b", DependencyDeclaration("serde", "1.0")),
            package("c", DependencyDeclaration("tokio", "1")),
        )
        records = aggregate_dependencies(ws)

        assert records["serde"].count == 2
        assert records["serde"].workspace_packages == ["/ws/a/Cargo.toml", "/ws/b/Cargo.toml"]
        assert records["tokio"].count == 1

    def test_each_kind_counts_separately(self):
        """A crate under [dependencies] and [dev-dependencies] of one package counts twice."""
        ws = workspace(package(
            "a",
            DependencyDeclaration("serde", "1.0", kind="normal"),
            DependencyDeclaration("serde", "1.0", kind="dev"),
            DependencyDeclaration("serde", "1.0", kind="normal", target="cfg(unix)"),
        ))
        record = aggregate_dependencies(ws)["serde"]

        assert record.count == 3
        assert record.workspace_packages == ["/ws/a/Cargo.toml"] * 3

    def test_last_version_wins(self):
        ws = workspace(
            package("a", DependencyDeclaration("serde", "1.0.100")),
            package("b", DependencyDeclaration("serde", "1.0.200")),
        )
        record = aggregate_dependencies(ws)["serde"]

        assert record.version == "1.0.200"
        assert record.requirements == ["1.0.100", "1.0.200"]

    def test_caret_requirement_normalized(self):
        ws = workspace(package("a", DependencyDeclaration("serde", "^1.0")))
        assert aggregate_dependencies(ws)["serde"].version == "1.0"

    def test_default_features_disabled_is_sticky(self):
        ws = workspace(
            package("a", DependencyDeclaration("rand", "0.8", uses_default_features=False)),
            package("b", DependencyDeclaration("rand", "0.8")),
        )
        assert aggregate_dependencies(ws)["rand"].no_default_features is True

    def test_path_relative_to_workspace_root(self):
        ws = workspace(package("a", DependencyDeclaration("util", path="/ws/crates/util")))
        record = aggregate_dependencies(ws)["util"]

        assert record.path == "crates/util"
        assert record.version == "*"

    def test_path_last_write_wins_even_when_absent(self):
        ws = workspace(
            package("a", DependencyDeclaration("util", "0.1", path="/ws/crates/util")),
            package("b", DependencyDeclaration("util", "0.1")),
        )
        assert aggregate_dependencies(ws)["util"].path is None

    def test_excluded_packages_contribute_nothing(self):
        ws = workspace(
            package("a", DependencyDeclaration("serde", "1.0")),
            package("xtask", DependencyDeclaration("serde", "1.0"), DependencyDeclaration("clap", "4")),
        )
        records = aggregate_dependencies(ws, exclude_packages=["xtask"])

        assert records["serde"].count == 1
        assert "clap" not in records

    def test_records_ordered_by_name(self):
        ws = workspace(package(
            "a",
            DependencyDeclaration("zstd", "0.13"),
            DependencyDeclaration("anyhow", "1"),
            DependencyDeclaration("log", "0.4"),
        ))
        assert list(aggregate_dependencies(ws)) == ["anyhow", "log", "zstd"]

    def test_empty_workspace(self):
        assert aggregate_dependencies(workspace()) == {}


class TestSelectCandidates:
    """Test threshold filtering."""

    records = {
        "serde": AggregatedRecord(count=3),
        "tokio": AggregatedRecord(count=2),
        "log": AggregatedRecord(count=1),
    }

    def test_threshold_is_inclusive(self):
        assert select_candidates(self.records, 2) == {"serde", "tokio"}

    def test_nothing_reaches_threshold(self):
        assert select_candidates(self.records, 10) == set()

    def test_zero_threshold_selects_everything(self):
        assert select_candidates(self.records, 0) == {"serde", "tokio", "log"}

    @pytest.mark.parametrize("threshold", range(0, 5))
    def test_monotonic_in_threshold(self, threshold):
        assert select_candidates(self.records, threshold + 1) <= select_candidates(self.records, threshold)


class TestFindDivergentRequirements:
    """Test divergence warnings."""

    def test_reports_distinct_requirements_in_order(self):
        records = {
            "serde": AggregatedRecord(count=3, requirements=["1.0", "1.2", "1.0"]),
            "log": AggregatedRecord(count=2, requirements=["0.4", "0.4.0"]),
        }
        assert find_divergent_requirements(records, {"serde", "log"}) == {"serde": ["1.0", "1.2"]}

    def test_only_candidates_checked(self):
        records = {"serde": AggregatedRecord(count=1, requirements=["1.0", "2.0"])}
        assert find_divergent_requirements(records, set()) == {}


class TestWorkspaceRelativePath:
    """Test path re-anchoring."""

    def test_inside_root(self):
        assert workspace_relative_path("/ws/crates/a/../util", "/ws") == "crates/util"

    def test_outside_root(self):
        assert workspace_relative_path("/vendor/util", "/ws") == "../vendor/util"
