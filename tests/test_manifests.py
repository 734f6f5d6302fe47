"""
Tests for loading the YAML manifests.
"""

from pathlib import Path

import pytest

from dotfiles_installer.actions import DownloadAndExtract, RunExternal, RunShell
from dotfiles_installer.errors import ManifestError
from dotfiles_installer.lib.manifests import load_links_manifest, load_tools_manifest, load_yaml


TOOLS_YAML = """
required_commands: [curl, tar]
tools:
  - name: mise
    check_path: ~/.local/bin/mise
    install: curl -fsSL https://mise.run | sh
    path_additions: [~/.local/bin]
    retry: {attempts: 4, delay: 1}
    verify: true
  - name: ripgrep
    check_command: rg
    install:
      kind: download
      url: https://example.invalid/rg.tar.gz
      destination: ${XDG_CONFIG_HOME}/rg
      strip_components: 1
post_install:
  - name: tools
    command: mise install
    force_command: mise install --force
    requires: mise
    critical: true
  - name: doctor
    command:
      kind: exec
      argv: [mise, doctor]
"""

LINKS_YAML = """
backup: true
directories:
  - ${XDG_CONFIG_HOME}
  - ~/.local/bin
links:
  - source: config/nvim
    target: ${XDG_CONFIG_HOME}/nvim
  - source: zsh/.zshrc
    target: ~/.zshrc
"""


def _write(settings, name: str, text: str) -> Path:
    p = settings.manifests_dir / name
    p.write_text(text)
    return p


class TestToolsManifest:
    def test_parses_tools_and_tasks(self, settings, home):
        _write(settings, "tools.yaml", TOOLS_YAML)

        m = load_tools_manifest(settings)

        assert m.required_commands == ["curl", "tar"]
        mise, rg = m.tools
        assert mise.name == "mise"
        assert mise.check_command == "mise"
        assert mise.check_path == home / ".local" / "bin" / "mise"
        assert mise.install == RunShell("curl -fsSL https://mise.run | sh")
        assert mise.path_additions == (home / ".local" / "bin",)
        assert mise.retry.attempts == 4
        assert mise.verify is True

        assert rg.check_command == "rg"
        assert isinstance(rg.install, DownloadAndExtract)
        assert rg.install.destination == home / ".config" / "rg"
        assert rg.install.strip_components == 1

        tools, doctor = m.post_install
        assert tools.critical is True
        assert tools.requires == "mise"
        assert tools.force_command == RunShell("mise install --force")
        assert doctor.command == RunExternal(("mise", "doctor"))
        assert doctor.critical is False

    def test_tool_without_install_is_rejected(self, settings):
        _write(settings, "tools.yaml", "tools:\n  - name: x\n")
        with pytest.raises(ManifestError, match="install"):
            load_tools_manifest(settings)

    def test_unknown_action_kind_is_rejected(self, settings):
        _write(settings, "tools.yaml", "tools:\n  - name: x\n    install: {kind: teleport}\n")
        with pytest.raises(ManifestError, match="teleport"):
            load_tools_manifest(settings)

    def test_empty_file_is_an_empty_manifest(self, settings):
        _write(settings, "tools.yaml", "")
        m = load_tools_manifest(settings)
        assert m.tools == [] and m.post_install == [] and m.required_commands == []


class TestLinksManifest:
    def test_parses_and_expands_targets(self, settings, home):
        _write(settings, "links.yaml", LINKS_YAML)

        m = load_links_manifest(settings)

        assert m.backup is True
        assert m.directories == [home / ".config", home / ".local" / "bin"]
        assert [(s.relative_source, s.absolute_target) for s in m.links] == [
            (Path("config/nvim"), home / ".config" / "nvim"),
            (Path("zsh/.zshrc"), home / ".zshrc"),
        ]

    def test_absolute_source_is_rejected(self, settings):
        _write(settings, "links.yaml", "links:\n  - {source: /etc/passwd, target: ~/x}\n")
        with pytest.raises(ManifestError, match="relative"):
            load_links_manifest(settings)

    def test_links_must_be_a_list(self, settings):
        _write(settings, "links.yaml", "links: nope\n")
        with pytest.raises(ManifestError, match="must be a list"):
            load_links_manifest(settings)


class TestLoadYaml:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_yaml(tmp_path / "none.yaml")

    def test_invalid_yaml(self, tmp_path):
        p = tmp_path / "bad.yaml"
        p.write_text("a: [unterminated\n")
        with pytest.raises(ManifestError, match="Invalid YAML"):
            load_yaml(p)

    def test_top_level_must_be_mapping(self, tmp_path):
        p = tmp_path / "list.yaml"
        p.write_text("- a\n- b\n")
        with pytest.raises(ManifestError, match="mapping"):
            load_yaml(p)

    def test_shipped_manifests_load(self, settings):
        repo_root = Path(__file__).resolve().parents[1]
        tools = load_tools_manifest(settings, repo_root / "manifests" / "tools.yaml")
        links = load_links_manifest(settings, repo_root / "manifests" / "links.yaml")
        assert any(t.name == "mise" for t in tools.tools)
        assert links.links
