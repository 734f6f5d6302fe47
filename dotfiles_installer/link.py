from __future__ import annotations

import argparse
import logging
from typing import List, Optional

from .lib.manifests import LinksManifest, load_links_manifest
from .logging_utils import configure_logging, log_complete
from .pipeline import run_pipeline
from .run_context import RunContext, run_guarded
from .settings import Settings
from .steps import CreateDirectoriesStep, LinkDotfilesStep, ValidateSystemStep

logger = logging.getLogger(__name__)

SCRIPT_NAME = "link-dotfiles"


def build_steps(manifest: LinksManifest):
    return [
        ValidateSystemStep(),
        CreateDirectoriesStep(manifest),
        LinkDotfilesStep(manifest),
    ]


def run(*, settings: Optional[Settings] = None) -> int:
    """Create config directories and symlink dotfiles into place. Returns the exit code."""

    settings = settings or Settings.from_env()
    ctx = RunContext(SCRIPT_NAME, settings)
    configure_logging(log_format=settings.log_format, log_path=str(ctx.error_log_path), user=settings.user)

    def body() -> None:
        manifest = load_links_manifest(settings)
        run_pipeline(ctx=ctx, steps=build_steps(manifest))
        log_complete(logger, "Dotfiles linked from %s", settings.dotfiles_dir)

    return run_guarded(ctx, body)


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="dotfiles-link",
        description="Create config directories and symlink dotfiles from the checkout into place.",
    )
    _, unknown = p.parse_known_args(argv)
    if unknown:
        p.print_usage()
        print(f"Unknown option: {unknown[0]}")
        print("Use --help for usage information.")
        return 1
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
