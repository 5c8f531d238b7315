"""SLURM command-line client package.

Runs the Slurm status tools and returns raw text, plus the tokenizers and
Pydantic row models that turn that text into validated raw records. Business
logic and aggregation are handled by collector modules.

Exports:
    SlurmCliClient: Command runner with timeout and error handling.
    AcquisitionError: Raised when a command cannot be run or fails.
    CommandResult: Captured output of one command.
    parsing: Module with text tokenizers.
    types: Module containing Pydantic models for raw rows.
    DEFAULT_TIMEOUT: Default per-command timeout.
"""

from . import parsing, types
from .client import (
    DEFAULT_TIMEOUT,
    AcquisitionError,
    CommandResult,
    CommandRunner,
    SlurmCliClient,
)

__all__ = [
    "DEFAULT_TIMEOUT",
    "AcquisitionError",
    "CommandResult",
    "CommandRunner",
    "SlurmCliClient",
    "parsing",
    "types",
]
