"""Shared fixtures: canned Slurm output and a fake command runner."""

from collections.abc import Sequence

import pytest

from slurm_dashboard.slurmcli import CommandResult

SCONTROL_TEXT = "\n".join(
    [
        "NodeName=c1 CPUAlloc=0 CPUTot=32 RealMemory=128000 AllocMem=0 "
        "State=IDLE Partitions=batch,mpi Gres=(null)",
        "NodeName=c2 CPUAlloc=16 CPUTot=32 RealMemory=128000 AllocMem=64000 "
        "State=MIXED Partitions=batch,lab-smith Gres=(null)",
        "NodeName=g1 CPUAlloc=16 CPUTot=32 RealMemory=256000 AllocMem=128000 "
        "State=ALLOCATED Partitions=gpu Gres=gpu:a100:4",
        "NodeName=g2 CPUAlloc=0 CPUTot=32 RealMemory=256000 AllocMem=0 "
        "State=IDLE Partitions=gpu Gres=gpu:a100:4",
    ],
)

SINFO_TEXT = """PARTITION AVAIL TIMELIMIT NODES STATE
lab-smith up infinite 1 mix
gpu up 2-00:00:00 2 mix
batch* up 1-00:00:00 2 mix
mpi up 12:00:00 1 idle
"""

SQUEUE_TEXT = """JOBID NAME USER ST TIME NODES CPUS PARTITION NODELIST(REASON)
2001 train alice R 3:10:00 1 16 gpu g1
2002 prep alice R 0:42 1 16 batch c2
2003 wait alice PD 0:00 1 4 batch (Resources)
"""


class FakeRunner:
    """Command runner answering from canned output keyed by executable."""

    def __init__(self, outputs: dict[str, CommandResult]):
        self.outputs = outputs
        self.calls: list[tuple[list[str], float]] = []

    def __call__(self, command: Sequence[str], timeout: float) -> CommandResult:
        self.calls.append((list(command), timeout))
        return self.outputs[command[0]]


@pytest.fixture
def cluster_outputs() -> dict[str, CommandResult]:
    """Successful output for scontrol, sinfo and squeue."""
    return {
        "scontrol": CommandResult(stdout=SCONTROL_TEXT, success=True),
        "sinfo": CommandResult(stdout=SINFO_TEXT, success=True),
        "squeue": CommandResult(stdout=SQUEUE_TEXT, success=True),
    }


@pytest.fixture
def fake_runner(cluster_outputs: dict[str, CommandResult]) -> FakeRunner:
    return FakeRunner(cluster_outputs)


@pytest.fixture
def make_runner() -> type[FakeRunner]:
    """The FakeRunner class, for tests that need custom outputs."""
    return FakeRunner
