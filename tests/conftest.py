"""
Shared test fixtures and configuration.
"""

import os
from pathlib import Path

import pytest

from dotfiles_installer.lib.tempdir import TempDirManager
from dotfiles_installer.logging_utils import configure_logging
from dotfiles_installer.run_context import RunContext
from dotfiles_installer.settings import Settings


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers a test installed through configure_logging()."""
    yield
    configure_logging(also_console=False)


@pytest.fixture
def home(tmp_path: Path) -> Path:
    h = tmp_path / "home"
    h.mkdir()
    return h


@pytest.fixture
def dotfiles_dir(tmp_path: Path) -> Path:
    d = tmp_path / "dotfiles"
    (d / "manifests").mkdir(parents=True)
    return d


@pytest.fixture
def settings(home: Path, dotfiles_dir: Path) -> Settings:
    return Settings(
        home=home,
        user="tester",
        path=os.environ.get("PATH", ""),
        dotfiles_dir=dotfiles_dir,
        xdg_config_home=home / ".config",
    )


@pytest.fixture
def scratch_root(tmp_path: Path) -> Path:
    s = tmp_path / "scratch"
    s.mkdir()
    return s


@pytest.fixture
def ctx(settings: Settings, scratch_root: Path, tmp_path: Path) -> RunContext:
    return RunContext(
        "test-script",
        settings,
        tempdirs=TempDirManager(scratch_root),
        error_log_dir=tmp_path / "logs",
    )


@pytest.fixture
def supported_arch(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("dotfiles_installer.lib.checker.platform.machine", lambda: "x86_64")
