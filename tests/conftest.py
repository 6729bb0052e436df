"""Shared fixtures for subvoltools tests."""

import os

import pytest
from click.testing import CliRunner

from subvoltools.backup import HostProbe


class FakeProbe(HostProbe):
    """Host probe with fixed answers."""

    def __init__(self, tools=(), cpus=1, terminal=False):
        self.tools = set(tools)
        self.cpus = cpus
        self.terminal = terminal

    def has_tool(self, name):
        return name in self.tools

    def cpu_count(self):
        return self.cpus

    def has_terminal(self):
        return self.terminal


@pytest.fixture
def make_probe():
    return FakeProbe


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def plain_host(monkeypatch):
    """Make the default host probe report a bare machine (plain copy only)."""
    monkeypatch.setattr(HostProbe, "has_tool", lambda self, name: False)
    monkeypatch.setattr(HostProbe, "cpu_count", lambda self: 1)
    monkeypatch.setattr(HostProbe, "has_terminal", lambda self: False)


@pytest.fixture
def fail_copy(monkeypatch):
    """Make the copy primitive fail for the given file names.

    Permission bits cannot simulate unreadable files when tests run as
    root, so the failure is injected instead.
    """
    from subvoltools.backup import _ops
    real = _ops.copy_entry

    def install(*names):
        def fake(src, dst, progress=None):
            if os.path.basename(str(src)) in names:
                raise PermissionError(13, "Permission denied", str(src))
            return real(src, dst, progress)
        monkeypatch.setattr(_ops, "copy_entry", fake)

    return install


@pytest.fixture
def vanish_after_walk(monkeypatch):
    """Delete the given source files right after enumeration.

    The copy step then meets a listed file that is gone.  That fails for
    every strategy, tar included, and does not depend on permissions.
    """
    from subvoltools.backup import _ops
    real = _ops.enumerate_tree

    def install(*names):
        def walk(source, exclusions=None, *, mode):
            part = real(source, exclusions, mode=mode)
            for name in names:
                os.unlink(os.path.join(str(source), name))
            return part
        monkeypatch.setattr(_ops, "enumerate_tree", walk)

    return install


@pytest.fixture
def scenario_tree(tmp_path):
    """Source tree: a.txt, logs/app.log, logs/debug.log, .git/HEAD."""
    src = tmp_path / "src"
    (src / "logs").mkdir(parents=True)
    (src / ".git").mkdir()
    (src / "a.txt").write_text("alpha")
    (src / "logs" / "app.log").write_text("app")
    (src / "logs" / "debug.log").write_text("debug")
    (src / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return src


@pytest.fixture
def ten_files(tmp_path):
    """Source with file00.txt .. file09.txt."""
    src = tmp_path / "ten"
    src.mkdir()
    for i in range(10):
        (src / f"file{i:02d}.txt").write_text(f"content {i}\n")
    return src


@pytest.fixture
def nested_tree(tmp_path):
    """Deeper tree with an empty directory.

    Tree:
        readme.txt, src/main.py, src/util.py, src/sub/deep.txt,
        docs/guide.md, empty/
    """
    root = tmp_path / "nested"
    (root / "src" / "sub").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "empty").mkdir()
    (root / "readme.txt").write_text("readme")
    (root / "src" / "main.py").write_text("main")
    (root / "src" / "util.py").write_text("util")
    (root / "src" / "sub" / "deep.txt").write_text("deep")
    (root / "docs" / "guide.md").write_text("guide")
    return root
