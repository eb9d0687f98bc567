"""Exceptions for vm-installer."""


class InstallerError(Exception):
    """Generic vm-installer exception."""


class MissingDependencyError(InstallerError):
    """A required program cannot be found on PATH."""

    def __init__(self, program: str):
        super().__init__(f"Missing dependency: {program}")
        self.program = program


class ConfigError(InstallerError, ValueError):
    """Configuration is missing a required value or is malformed."""


class StageError(InstallerError):
    """A pipeline stage failed."""

    def __init__(
        self,
        stage: str,
        message: str,
        output: str = "",
        returncode: int | None = None
    ):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.output = output
        self.returncode = returncode


class SignalDeliveryError(InstallerError):
    """The emulator could not be interrupted. Fatal to the whole program."""
