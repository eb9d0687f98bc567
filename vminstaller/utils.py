"""
Utility functions for running commands and checking dependencies.

Provides a wrapper around subprocess for executing the external tools
with proper error reporting, and the preflight check for those tools.
"""

import shlex
import shutil
import subprocess
from typing import Iterable

from rich.console import Console
from rich.markup import escape

from vminstaller.exceptions import MissingDependencyError

console = Console()

# Programs the install pipeline shells out to
REQUIRED_PROGRAMS = ("docker", "qemu-system-x86_64", "qemu-img")


def run_command(
    cmd: list[str],
    capture: bool = True,
    check: bool = True,
    **kwargs
) -> subprocess.CompletedProcess:
    """
    Run a command and return the result.

    Args:
        cmd: Command and arguments as a list
        capture: Whether to capture stdout/stderr
        check: Whether to raise exception on non-zero exit
        **kwargs: Additional arguments to pass to subprocess.run

    Returns:
        CompletedProcess object with command results

    Raises:
        subprocess.CalledProcessError: If check=True and command fails
    """
    console.print(f"[dim]$ {escape(format_command(cmd))}[/]")

    try:
        result = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            check=check,
            **kwargs
        )
        return result
    except subprocess.CalledProcessError as e:
        if capture:
            console.print(f"[red]Command failed:[/] {escape(format_command(cmd))}")
            if e.stdout:
                console.print(f"[dim]stdout:[/] {escape(e.stdout)}")
            if e.stderr:
                console.print(f"[dim]stderr:[/] {escape(e.stderr)}")
        raise


def format_command(cmd: list[str]) -> str:
    """Render a command line for display."""
    return " ".join(shlex.quote(str(arg)) for arg in cmd)


def find_missing_dependency(programs: Iterable[str]) -> str | None:
    """
    Find the first program that is not resolvable on PATH.

    Args:
        programs: Program names to look up

    Returns:
        Name of the first missing program, or None if all were found
    """
    for program in programs:
        if shutil.which(program) is None:
            return program
    return None


def check_dependencies(programs: Iterable[str] = REQUIRED_PROGRAMS) -> None:
    """
    Make sure every program in `programs` is installed.

    Raises:
        MissingDependencyError: For the first program that is missing
    """
    missing = find_missing_dependency(programs)
    if missing is not None:
        raise MissingDependencyError(missing)
