"""
End-to-end tests for the two entry points.
"""

import os
from pathlib import Path

import pytest

from dotfiles_installer import link, main
from dotfiles_installer.errors import DownloadError


LINKS_YAML = """
directories:
  - ${XDG_CONFIG_HOME}
  - ${XDG_CONFIG_HOME}/k9s/skins
links:
  - source: config/nvim
    target: ${XDG_CONFIG_HOME}/nvim
  - source: zsh/.zshrc
    target: ~/.zshrc
"""


@pytest.fixture
def linkable(dotfiles_dir: Path, settings):
    (dotfiles_dir / "config" / "nvim").mkdir(parents=True)
    (dotfiles_dir / "config" / "nvim" / "init.lua").write_text("-- nvim\n")
    (dotfiles_dir / "zsh").mkdir()
    (dotfiles_dir / "zsh" / ".zshrc").write_text("# zsh\n")
    (settings.manifests_dir / "links.yaml").write_text(LINKS_YAML)
    return dotfiles_dir


def _tools_yaml(settings, text: str) -> None:
    (settings.manifests_dir / "tools.yaml").write_text(text)


class TestLink:
    def test_links_everything(self, linkable, settings, home, supported_arch):
        assert link.run(settings=settings) == 0

        assert (home / ".config" / "k9s" / "skins").is_dir()
        nvim = home / ".config" / "nvim"
        assert nvim.is_symlink()
        assert os.readlink(nvim) == str(linkable / "config" / "nvim")
        assert (home / ".zshrc").read_text() == "# zsh\n"

    def test_replaces_existing_regular_file(self, linkable, settings, home, supported_arch):
        (home / ".zshrc").write_text("standalone")
        assert link.run(settings=settings) == 0
        assert (home / ".zshrc").is_symlink()

    def test_unsupported_architecture_changes_nothing(self, linkable, settings, home, monkeypatch):
        monkeypatch.setattr("dotfiles_installer.lib.checker.platform.machine", lambda: "riscv64")

        assert link.run(settings=settings) != 0

        assert not (home / ".config").exists()
        assert not os.path.lexists(home / ".zshrc")
        saved = list(home.glob("link-dotfiles_error_*.log"))
        assert len(saved) == 1
        assert "Unsupported architecture: riscv64" in saved[0].read_text()

    def test_missing_manifest_fails(self, settings, supported_arch):
        assert link.run(settings=settings) == 1

    def test_unknown_option(self, capsys):
        assert link.main(["--bogus"]) == 1
        out = capsys.readouterr().out
        assert "Unknown option: --bogus" in out
        assert "Use --help for usage information." in out

    def test_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            link.main(["--help"])
        assert exc_info.value.code == 0
        assert "dotfiles-link" in capsys.readouterr().out


class TestInstall:
    def test_installs_missing_tool_and_skips_present_one(self, settings, tmp_path, supported_arch):
        marker = tmp_path / "installed"
        skipped = tmp_path / "skipped"
        _tools_yaml(settings, f"""
required_commands: [sh]
tools:
  - name: missing
    check_command: definitely-not-installed-xyz
    install: "touch {marker}"
  - name: shell
    check_command: sh
    install: "touch {skipped}"
""")

        assert main.run(settings=settings) == 0
        assert marker.exists()
        assert not skipped.exists()

    def test_force_reinstalls_present_tools(self, settings, tmp_path, supported_arch):
        marker = tmp_path / "forced"
        _tools_yaml(settings, f"""
tools:
  - name: shell
    check_command: sh
    install: "touch {marker}"
""")

        assert main.run(settings=settings, force=True) == 0
        assert marker.exists()

    def test_failed_install_reports_exit_code_and_saves_log(self, settings, home, supported_arch):
        _tools_yaml(settings, """
tools:
  - name: broken
    check_command: definitely-not-installed-xyz
    install: "exit 7"
""")

        assert main.run(settings=settings) == 7
        saved = list(home.glob("install-packages_error_*.log"))
        assert len(saved) == 1
        assert "exit 7" in saved[0].read_text()

    def test_non_critical_post_install_failure_only_warns(self, settings, tmp_path, supported_arch, caplog):
        after = tmp_path / "after"
        _tools_yaml(settings, f"""
post_install:
  - name: flaky plugin
    requires: sh
    command: "exit 3"
  - name: after
    command: "touch {after}"
  - name: needs missing tool
    requires: definitely-not-installed-xyz
    command: "touch {tmp_path / 'never'}"
""")

        assert main.run(settings=settings) == 0
        assert "flaky plugin failed with exit code 3 (non-critical)" in caplog.text
        assert after.exists()
        assert not (tmp_path / "never").exists()

    def test_non_critical_download_failure_only_warns(self, settings, home, monkeypatch, supported_arch, caplog):
        def offline(url, output, **kw):
            raise DownloadError(f"Failed to download from {url} after 3 attempts")

        monkeypatch.setattr("dotfiles_installer.actions.download_with_retry", offline)
        _tools_yaml(settings, """
post_install:
  - name: k9s theme
    command:
      kind: download
      url: https://example.invalid/skin.yaml
      destination: ${XDG_CONFIG_HOME}/k9s/skins/skin.yaml
      archive: raw
""")

        assert main.run(settings=settings) == 0
        assert "k9s theme failed with exit code 1 (non-critical)" in caplog.text
        assert list(home.glob("install-packages_error_*.log")) == []

    def test_critical_post_install_failure_fails_the_run(self, settings, supported_arch):
        _tools_yaml(settings, """
post_install:
  - name: mise tools
    command: "exit 4"
    critical: true
""")

        assert main.run(settings=settings) == 4

    def test_force_command_used_in_force_mode(self, settings, tmp_path, supported_arch):
        normal = tmp_path / "normal"
        forced = tmp_path / "forced"
        _tools_yaml(settings, f"""
post_install:
  - name: tools
    command: "touch {normal}"
    force_command: "touch {forced}"
    critical: true
""")

        assert main.run(settings=settings, force=True) == 0
        assert forced.exists()
        assert not normal.exists()

    def test_missing_required_command_fails_before_installing(self, settings, tmp_path, supported_arch):
        marker = tmp_path / "installed"
        _tools_yaml(settings, f"""
required_commands: [definitely-not-installed-xyz]
tools:
  - name: missing
    check_command: definitely-not-installed-xyz
    install: "touch {marker}"
""")

        assert main.run(settings=settings) == 1
        assert not marker.exists()

    def test_unknown_option(self, capsys):
        assert main.main(["--verbose"]) == 1
        assert "Unknown option: --verbose" in capsys.readouterr().out

    def test_help_mentions_force(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main.main(["--help"])
        assert exc_info.value.code == 0
        assert "--force" in capsys.readouterr().out
