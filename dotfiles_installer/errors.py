from __future__ import annotations

from typing import Optional, Sequence


class ProvisionError(RuntimeError):
    """Base class for every failure raised by the provisioning engine."""

    exit_code = 1


class EnvironmentCheckError(ProvisionError):
    pass


class ManifestError(ProvisionError, ValueError):
    pass


class CommandError(ProvisionError):
    def __init__(
        self,
        *,
        returncode: int,
        argv: Optional[Sequence[str]] = None,
        command: Optional[str] = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.argv = list(argv) if argv is not None else None
        self.command = command
        self.stderr = stderr
        self.exit_code = returncode or 1
        shown = command if command is not None else " ".join(self.argv or [])
        msg = f"Command failed ({returncode}): {shown}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class DownloadError(ProvisionError):
    pass


class InstallError(ProvisionError):
    pass


class SymlinkError(ProvisionError):
    pass


class Interrupted(Exception):
    """Raised from the SIGTERM handler so interrupts unwind like SIGINT does."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"interrupted by signal {signum}")
