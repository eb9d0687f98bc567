"""
Install pipeline.

Turns an installer ISO into a qcow2 disk image by booting it in QEMU,
then ships the image inside a Docker image:

    create image -> run machine -> [compress image] -> build image -> push image

Every stage must succeed before the next one starts. All files live in
a temporary working directory that is removed when the run ends.
"""

import os
import queue
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.markup import escape

from vminstaller.config import InstallConfig
from vminstaller.exceptions import SignalDeliveryError, StageError
from vminstaller.utils import format_command, run_command

console = Console()

IMAGE_TOOL = "qemu-img"
EMULATOR = "qemu-system-x86_64"
CONTAINER_TOOL = "docker"

IMAGE_FILENAME = "base.qcow2"
IMAGE_FORMAT = "qcow2"
DOCKERFILE_NAME = "Dockerfile"
DOCKERFILE_TEMPLATE = "FROM busybox\nCOPY {image_filename} /base_image/"

# Fixed machine resources for the install run
MACHINE_MEMORY = "size=1024"
MACHINE_CPUS = "cpus=1"
VNC_DISPLAY = "0.0.0.0:0"

# Messages posted by the run-machine helper threads
_EXITED = "exited"
_FATAL = "fatal"


class Installer:
    """Runs the install pipeline for one configuration."""

    def __init__(self, config: InstallConfig, stdin: TextIO | None = None):
        """
        Create the working directory for this run.

        Args:
            config: Install configuration
            stdin: Where to read the operator's acknowledgement from,
                defaults to sys.stdin

        Raises:
            StageError: If the working directory cannot be created
        """
        self.config = config
        self.stdin = stdin if stdin is not None else sys.stdin

        try:
            self.context_dir = Path(tempfile.mkdtemp(prefix="docker-context"))
        except OSError as e:
            raise StageError("setup", f"cannot create working directory: {e}") from e

        self.image_path = self.context_dir / IMAGE_FILENAME

    def install(self) -> None:
        """
        Run every stage in order.

        The working directory is removed on the way out, whether the
        run succeeded or not.

        Raises:
            StageError: From the first stage that failed
            SignalDeliveryError: If the emulator could not be interrupted
        """
        console.print(f"[dim]Context dir: {escape(str(self.context_dir))}[/]")

        try:
            console.print("[cyan]Creating machine image...[/]")
            self.create_image()

            console.print("[cyan]Starting machine...[/]")
            self.run_machine()

            if self.config.compress:
                console.print("[cyan]Compressing image...[/]")
                self.compress_image()

            console.print("[cyan]Building Docker image...[/]")
            self.build_image()

            console.print("[cyan]Pushing Docker image...[/]")
            self.push_image()
        except StageError as e:
            console.print(f"[red]✗ {escape(str(e))}[/]")
            raise
        finally:
            shutil.rmtree(self.context_dir, ignore_errors=True)

    def _run_stage(self, stage: str, cmd: list[str]) -> str:
        """Run one external tool for `stage` and return its stdout."""
        try:
            result = run_command(cmd)
        except subprocess.CalledProcessError as e:
            raise StageError(
                stage,
                f"{cmd[0]} exited with status {e.returncode}",
                output=e.stdout or "",
                returncode=e.returncode
            ) from e
        except OSError as e:
            raise StageError(stage, f"cannot run {cmd[0]}: {e}") from e

        return result.stdout

    def create_image(self) -> str:
        """Create an empty qcow2 disk of the configured size."""
        return self._run_stage("create", [
            IMAGE_TOOL, "create",
            "-f", IMAGE_FORMAT,
            str(self.image_path),
            self.config.size,
        ])

    def machine_command(self) -> list[str]:
        """Build the emulator command line for the install boot."""
        cmd = [
            EMULATOR,
            "-m", MACHINE_MEMORY,
            "-smp", MACHINE_CPUS,
            "-cdrom", self.config.iso_path,
            "-vnc", VNC_DISPLAY,
            "-drive", f"file={self.image_path}",
        ]
        if self.config.kvm:
            cmd.insert(1, "-enable-kvm")
        return cmd

    def run_machine(self) -> str:
        """
        Boot the ISO with the new disk attached and wait for the operator.

        The operator finishes the installation over VNC and presses enter.
        The emulator is then sent SIGINT and this returns once it has exited.
        If the emulator exits on its own first, the stdin reader is left
        blocked until the program ends.

        Raises:
            StageError: If the emulator cannot start or exits non-zero
            SignalDeliveryError: If SIGINT could not be delivered
        """
        cmd = self.machine_command()
        console.print(f"[dim]$ {escape(format_command(cmd))}[/]")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                text=True
            )
        except OSError as e:
            raise StageError("run", f"cannot run {EMULATOR}: {e}") from e

        events: queue.Queue = queue.Queue()

        threading.Thread(
            target=self._wait_for_exit,
            args=(process, events),
            daemon=True
        ).start()
        threading.Thread(
            target=self._interrupt_on_input,
            args=(process, events),
            daemon=True
        ).start()

        event, payload = events.get()
        if event == _FATAL:
            raise SignalDeliveryError(
                f"cannot interrupt {EMULATOR}: {payload}"
            ) from payload

        output = payload
        if process.returncode != 0:
            if output:
                console.print(f"[dim]stdout:[/] {escape(output)}")
            raise StageError(
                "run",
                f"{EMULATOR} exited with status {process.returncode}",
                output=output,
                returncode=process.returncode
            )
        return output

    @staticmethod
    def _wait_for_exit(process: subprocess.Popen, events: queue.Queue) -> None:
        """Collect the emulator's output and report when it exits."""
        output, _ = process.communicate()
        events.put((_EXITED, output or ""))

    def _interrupt_on_input(
        self,
        process: subprocess.Popen,
        events: queue.Queue
    ) -> None:
        """Send SIGINT to the emulator once the operator presses enter."""
        console.print(
            f"[bold]{escape('Press [enter] when installation is complete.')}[/]"
        )
        # An unreadable line still counts as the acknowledgement
        try:
            self.stdin.readline()
        except (OSError, ValueError):
            pass

        try:
            process.send_signal(signal.SIGINT)
        except OSError as e:
            events.put((_FATAL, e))

    def compress_image(self) -> str:
        """
        Compress the disk image in place.

        qemu-img writes to a sibling file which then replaces the
        original, so a failed conversion leaves the original untouched.
        """
        temp_path = self.image_path.with_name(self.image_path.name + ".temp")

        try:
            output = self._run_stage("compress", [
                IMAGE_TOOL, "convert",
                "-O", IMAGE_FORMAT,
                "-c",
                str(self.image_path),
                str(temp_path),
            ])
        except StageError:
            temp_path.unlink(missing_ok=True)
            raise

        try:
            os.replace(temp_path, self.image_path)
        except OSError as e:
            raise StageError("compress", f"cannot replace image: {e}") from e

        return output

    def write_dockerfile(self) -> Path:
        """Write the Dockerfile that copies the disk image into /base_image/."""
        dockerfile = self.context_dir / DOCKERFILE_NAME
        dockerfile.write_text(
            DOCKERFILE_TEMPLATE.format(image_filename=self.image_path.name)
        )
        return dockerfile

    def build_image(self) -> str:
        """Build the Docker image from the working directory."""
        try:
            self.write_dockerfile()
        except OSError as e:
            raise StageError("build", f"cannot write {DOCKERFILE_NAME}: {e}") from e

        return self._run_stage("build", [
            CONTAINER_TOOL, "build",
            "-t", self.config.image,
            str(self.context_dir),
        ])

    def push_image(self) -> str:
        """Push the Docker image to its registry."""
        return self._run_stage("push", [
            CONTAINER_TOOL, "push", self.config.image,
        ])
