"""SLURM command-line client.

Runs the Slurm status tools (scontrol, sinfo, squeue) and returns their raw
standard output. Parsing is left to the collector modules.
"""

import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

NODES_COMMAND = ("scontrol", "show", "node", "--oneliner")
PARTITIONS_FORMAT = "%P %a %l %D %t"
QUEUE_FORMAT = "%i %j %u %t %M %D %C %P %R"


class AcquisitionError(Exception):
    """Raised when a Slurm command could not be run or exited non-zero."""


@dataclass(frozen=True)
class CommandResult:
    """Captured output of one external command."""

    stdout: str
    success: bool
    stderr: str = ""


CommandRunner = Callable[[Sequence[str], float], CommandResult]


def run_command(command: Sequence[str], timeout: float) -> CommandResult:
    """Run ``command`` and capture its output.

    Args:
        command: Executable and arguments.
        timeout: Seconds to wait before the process is killed.

    Returns:
        CommandResult with stdout, stderr and whether the exit code was 0.

    Raises:
        FileNotFoundError: If the executable is not on PATH.
        subprocess.TimeoutExpired: If the command runs past ``timeout``.
    """
    completed = subprocess.run(  # noqa: S603
        list(command),
        capture_output=True,
        text=True,
        errors="replace",
        timeout=timeout,
        check=False,
    )
    return CommandResult(
        stdout=completed.stdout,
        success=completed.returncode == 0,
        stderr=completed.stderr,
    )


class SlurmCliClient:
    """Client for the Slurm command-line status tools.

    Each method runs one command synchronously and returns its stdout.
    Any failure is raised as :class:`AcquisitionError`; an empty stdout from
    a successful command is returned as-is and means "no records".

    The runner is injectable so the client can be driven without Slurm
    installed (tests, remote execution wrappers).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        runner: CommandRunner | None = None,
    ):
        """Initialize the CLI client.

        Args:
            timeout: Per-command timeout in seconds (default: 30.0).
            runner: Function executing a command; defaults to
                :func:`run_command`.

        Raises:
            ValueError: If timeout is not positive.
        """
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self._timeout = timeout
        self._runner = runner or run_command

    def _run(self, command: Sequence[str]) -> str:
        """Run a command through the configured runner.

        Args:
            command: Executable and arguments.

        Returns:
            Captured standard output.

        Raises:
            AcquisitionError: If the command is missing, times out or fails.
        """
        command_line = " ".join(command)
        start_time = time.time()
        logger.debug("Running command", command=command_line)

        try:
            result = self._runner(command, self._timeout)
        except FileNotFoundError as e:
            msg = f"Command not found: {command[0]}"
            raise AcquisitionError(msg) from e
        except subprocess.TimeoutExpired as e:
            msg = f"Command timed out after {self._timeout}s: {command_line}"
            raise AcquisitionError(msg) from e
        except OSError as e:
            msg = f"Command could not be run: {command_line}: {e}"
            raise AcquisitionError(msg) from e

        duration = time.time() - start_time
        if not result.success:
            logger.error(
                "Command failed",
                command=command_line,
                stderr=result.stderr.strip(),
                duration_seconds=round(duration, 3),
            )
            msg = f"Command failed: {command_line}"
            if stderr := result.stderr.strip():
                msg = f"{msg}\n{stderr}"
            raise AcquisitionError(msg)

        logger.debug("Command completed", duration_seconds=round(duration, 3))
        return result.stdout

    def show_nodes(self) -> str:
        """Return one-line-per-node inventory from ``scontrol``."""
        return self._run(NODES_COMMAND)

    def show_partitions(self) -> str:
        """Return the partition table from ``sinfo`` (header included)."""
        return self._run(("sinfo", "-o", PARTITIONS_FORMAT))

    def show_queue(
        self,
        user_only: bool = True,
        states: Sequence[str] = ("R",),
    ) -> str:
        """Return the job table from ``squeue`` (header included).

        Args:
            user_only: Restrict to jobs of the invoking user (``--me``).
            states: Job state codes to list; empty means all states.

        Returns:
            Raw squeue output.
        """
        command = ["squeue"]
        if user_only:
            command.append("--me")
        if states:
            command.extend(["-t", ",".join(states)])
        command.extend(["-o", QUEUE_FORMAT])
        return self._run(command)
