"""Shared fixtures: throwaway Dart projects under tmp_path."""
import textwrap
from pathlib import Path
from typing import Dict

import pytest

from dead_code_analyzer.config import AnalysisOptions


FIXTURES_DIR = Path(__file__).parent / 'fixtures'


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write {relative path: content} under root (content is dedented)."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return root


@pytest.fixture
def make_project(tmp_path):
    """Build a Dart package named `app` from a {relative path: content} dict."""
    def _make(files: Dict[str, str], name: str = "app") -> Path:
        root = tmp_path / name
        write_tree(root, {"pubspec.yaml": f"name: {name}\n", **files})
        return root
    return _make


@pytest.fixture
def sequential_options():
    return AnalysisOptions(max_workers=1, use_processes=False)


@pytest.fixture
def thread_options():
    """Threads keep monkeypatched workers visible to the pool."""
    return AnalysisOptions(max_workers=8, sequential_threshold=1, min_files_per_worker=1, use_processes=False)
