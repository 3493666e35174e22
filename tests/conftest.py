"""Shared fixtures for symdex tests."""

from __future__ import annotations

import os
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from symdex.index.store import SourceIndex


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the registry at a private directory and clear SYMDEX_* overrides."""
    for key in list(os.environ):
        if key.startswith("SYMDEX_"):
            monkeypatch.delenv(key)
    pids = tmp_path_factory.mktemp("registry") / "pids"
    monkeypatch.setenv("SYMDEX_PIDFILE_DIRECTORY", str(pids))
    return pids


def write_file(root: Path, relative: str, content: str) -> Path:
    """Write dedented source below root, creating parent directories."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return path


@pytest.fixture
def make_file() -> Callable[[Path, str, str], Path]:
    """Expose write_file to tests."""
    return write_file


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A small Python workspace with a package, a consumer and noise dirs."""
    root = tmp_path / "ws"
    write_file(
        root,
        "pkg/__init__.py",
        """
        from .models import Widget

        __all__ = ["Widget"]
        """,
    )
    write_file(
        root,
        "pkg/models.py",
        """
        import os
        from pathlib import Path


        class Widget:
            kind = "basic"

            def __init__(self, name):
                self.name = name

            def label(self):
                return self.name.upper()


        def make_widget(name):
            return Widget(name)


        ROOT = Path(os.getcwd())
        """,
    )
    write_file(
        root,
        "app.py",
        """
        import json
        import requests
        from pkg import Widget
        from pkg.models import make_widget

        w = make_widget("a")
        print(w.label(), json.dumps({}), requests.get)
        mystery()
        """,
    )
    write_file(root, ".venv/lib/site.py", "X = 1\n")
    write_file(root, "build/gen.py", "Y = 2\n")
    write_file(root, "README.txt", "not python\n")
    return root.resolve()


@pytest.fixture
def index(workspace: Path) -> SourceIndex:
    """A SourceIndex over the workspace with the initial rebuild done."""
    idx = SourceIndex(workspace)
    idx.rebuild_all()
    return idx
