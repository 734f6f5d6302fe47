from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .lib.manifests import ToolsManifest, load_tools_manifest
from .logging_utils import configure_logging, log_complete
from .pipeline import run_pipeline
from .run_context import RunContext, run_guarded
from .settings import Settings
from .steps import InstallToolsStep, PostInstallStep, ValidateSystemStep

logger = logging.getLogger(__name__)

SCRIPT_NAME = "install-packages"


def build_steps(manifest: ToolsManifest):
    return [
        ValidateSystemStep(manifest.required_commands),
        InstallToolsStep(manifest),
        PostInstallStep(manifest),
    ]


def run(*, settings: Optional[Settings] = None, force: bool = False) -> int:
    """Install every tool from manifests/tools.yaml. Returns the exit code."""

    settings = settings or Settings.from_env()
    ctx = RunContext(SCRIPT_NAME, settings, force=force)
    configure_logging(log_format=settings.log_format, log_path=str(ctx.error_log_path), user=settings.user)
    ctx.enable_recovery()

    def body() -> None:
        manifest = load_tools_manifest(settings)
        result = run_pipeline(ctx=ctx, steps=build_steps(manifest))
        log_complete(logger, "All tools installed (%s)", ", ".join(result.ran_steps))

    return run_guarded(ctx, body)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="dotfiles-install",
        description="Install the development tools listed in manifests/tools.yaml.",
    )
    p.add_argument("--force", action="store_true", help="Force reinstallation of all packages")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    p = build_parser()
    args, unknown = p.parse_known_args(argv)
    if unknown:
        p.print_usage()
        print(f"Unknown option: {unknown[0]}")
        print("Use --help for usage information.")
        return 1
    return run(force=bool(args.force))


if __name__ == "__main__":
    raise SystemExit(main())
