"""Shared fixtures: throwaway Cargo workspaces on disk."""

import textwrap

import pytest


@pytest.fixture
def make_workspace(tmp_path):
    """Write a workspace from {relative path: manifest text} and return the root Cargo.toml."""

    def _make(files, root='[workspace]\nmembers = ["crates/*"]\n'):
        root_manifest = tmp_path / "Cargo.toml"
        root_manifest.write_text(textwrap.dedent(root))
        for rel_path, text in files.items():
            manifest = tmp_path / rel_path
            manifest.parent.mkdir(parents=True, exist_ok=True)
            manifest.write_text(textwrap.dedent(text))
        return root_manifest

    return _make
