"""Job collector for SLURM.

Parses ``squeue`` output into Job records and generates Prometheus metrics
counting jobs by state and partition.
"""

from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import asdict, dataclass

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..slurmcli.parsing import iter_table_rows

MIN_JOB_COLUMNS = 8

RUNNING_STATE = "R"
PENDING_STATE = "PD"


@dataclass(frozen=True)
class Job:
    """A single SLURM queue entry."""

    job_id: str
    name: str = ""
    user: str = ""
    state: str = ""
    time: str = ""
    nodes: int = 0
    cpus: int = 0
    partition: str = ""
    reason: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _transform_job(raw: slurmcli.types.RawJobData) -> Job:
    return Job(
        job_id=raw.job_id,
        name=raw.name,
        user=raw.user,
        state=raw.state,
        time=raw.time,
        nodes=raw.nodes,
        cpus=raw.cpus,
        partition=raw.partition,
        reason=raw.reason,
    )


def parse_queue(text: str) -> list[Job]:
    """Parse ``squeue -o "%i %j %u %t %M %D %C %P %R"`` output.

    The header line is skipped. The reason column keeps the rest of the
    line, so multi-word reasons stay intact. Rows with fewer than eight
    columns are dropped.

    Args:
        text: Raw squeue output including the header.

    Returns:
        List of jobs in output order.
    """
    return [
        _transform_job(slurmcli.types.RawJobData.model_validate(row))
        for row in iter_table_rows(
            text,
            slurmcli.types.JOB_COLUMNS,
            MIN_JOB_COLUMNS,
            rest_column=True,
        )
    ]


def fetch(
    client: slurmcli.SlurmCliClient,
    user_only: bool = True,
    states: Sequence[str] = (RUNNING_STATE,),
) -> list[Job]:
    """Fetch jobs through the Slurm CLI client.

    Args:
        client: CLI client to use for fetching.
        user_only: Only list the invoking user's jobs.
        states: Job state codes to list.

    Returns:
        List of jobs.

    Raises:
        AcquisitionError: If squeue could not be run.
    """
    return parse_queue(client.show_queue(user_only=user_only, states=states))


def generate_metrics(jobs: list[Job]) -> Iterator[Metric]:
    """Generate Prometheus metrics from job data.

    Creates a slurm_job_count gauge with one sample per (state, partition)
    combination present in the queue.

    Args:
        jobs: List of jobs.

    Yields:
        Prometheus Metric objects.
    """
    job_count = GaugeMetricFamily(
        "slurm_job_count",
        "Jobs in the queue",
        labels=["state", "partition"],
    )
    for (state, partition), count in Counter(
        (job.state, job.partition) for job in jobs
    ).items():
        job_count.add_metric([state, partition], count)
    yield job_count
