from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from string import Template
from typing import Dict, Mapping, Optional

LOG_FORMATS = ("text", "json")


def _repo_root() -> Path:
    # dotfiles_installer/settings.py -> dotfiles_installer -> repo root
    return Path(__file__).resolve().parents[1]


@dataclass(frozen=True)
class Settings:
    home: Path
    user: str
    path: str
    dotfiles_dir: Path
    xdg_config_home: Path
    log_format: str = "text"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        home = Path(env.get("HOME") or Path.home())
        dotfiles_dir = Path(env["DOTFILES_DIR"]) if env.get("DOTFILES_DIR") else _repo_root()
        xdg = Path(env["XDG_CONFIG_HOME"]) if env.get("XDG_CONFIG_HOME") else home / ".config"

        log_format = (env.get("LOG_FORMAT") or "text").strip().lower()
        if log_format not in LOG_FORMATS:
            log_format = "text"

        return cls(
            home=home,
            user=env.get("USER") or "",
            path=env.get("PATH") or "",
            dotfiles_dir=dotfiles_dir,
            xdg_config_home=xdg,
            log_format=log_format,
        )

    @property
    def manifests_dir(self) -> Path:
        return self.dotfiles_dir / "manifests"

    def template_vars(self) -> Dict[str, str]:
        return {
            "HOME": str(self.home),
            "USER": self.user,
            "DOTFILES_DIR": str(self.dotfiles_dir),
            "XDG_CONFIG_HOME": str(self.xdg_config_home),
        }

    def expand(self, value: str) -> Path:
        """Expand `~`, `${HOME}`, `${XDG_CONFIG_HOME}`... from these settings, not os.environ."""

        raw = Template(value).safe_substitute(self.template_vars())
        if raw == "~" or raw.startswith("~/"):
            raw = str(self.home) + raw[1:]
        return Path(raw)
