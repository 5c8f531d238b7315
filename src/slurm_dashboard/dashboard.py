"""Consolidated cluster snapshot.

Polls nodes, partitions and the job queue, then combines them with the GPU
and partition summaries and cluster-wide totals into one snapshot.
"""

import time
from collections.abc import Sequence
from dataclasses import asdict, dataclass

import structlog

from . import slurmcli
from .collectors import jobs, nodes, partitions

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClusterStats:
    """Cluster-wide totals derived from the node and job lists."""

    total_nodes: int
    total_cpus: int
    available_cpus: int
    total_memory_mb: int
    available_memory_mb: int
    total_jobs: int
    running_jobs: int
    pending_jobs: int

    @classmethod
    def from_records(
        cls,
        node_list: Sequence[nodes.Node],
        job_list: Sequence[jobs.Job],
    ) -> "ClusterStats":
        return cls(
            total_nodes=len(node_list),
            total_cpus=sum(n.cpus_total for n in node_list),
            available_cpus=sum(n.cpus_free for n in node_list),
            total_memory_mb=sum(n.memory_total for n in node_list),
            available_memory_mb=sum(n.memory_free for n in node_list),
            total_jobs=len(job_list),
            running_jobs=sum(1 for j in job_list if j.state == jobs.RUNNING_STATE),
            pending_jobs=sum(1 for j in job_list if j.state == jobs.PENDING_STATE),
        )


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything the dashboard shows, from a single poll."""

    timestamp: int
    nodes: list[nodes.Node]
    partitions: dict[str, partitions.PartitionSummary]
    gpu_summary: dict[str, nodes.GpuTypeSummary]
    jobs: list[jobs.Job]
    stats: ClusterStats

    def to_dict(self) -> dict:
        """Return a JSON-ready mapping preserving partition order."""
        return {
            "timestamp": self.timestamp,
            "nodes": [node.to_dict() for node in self.nodes],
            "partitions": {
                name: summary.to_dict() for name, summary in self.partitions.items()
            },
            "gpu_summary": {
                gpu_type: asdict(summary)
                for gpu_type, summary in self.gpu_summary.items()
            },
            "jobs": [job.to_dict() for job in self.jobs],
            "stats": asdict(self.stats),
        }


def get_dashboard_data(
    client: slurmcli.SlurmCliClient,
    public_order: Sequence[str] = partitions.DEFAULT_PUBLIC_PARTITIONS,
    queue_user_only: bool = True,
    queue_states: Sequence[str] = (jobs.RUNNING_STATE,),
) -> DashboardSnapshot:
    """Poll the cluster and build a dashboard snapshot.

    The three Slurm commands run one after another. If any of them fails
    the whole snapshot fails; no partial result is returned.

    Args:
        client: CLI client used for all three polls.
        public_order: Shared partitions to list first, in order.
        queue_user_only: Only list the invoking user's jobs.
        queue_states: Job state codes to list.

    Returns:
        Snapshot of nodes, partitions, GPUs, jobs and totals.

    Raises:
        AcquisitionError: If any Slurm command could not be run.
    """
    start = time.time()
    node_list = nodes.fetch(client)
    partition_list = partitions.fetch(client)
    job_list = jobs.fetch(client, user_only=queue_user_only, states=queue_states)

    snapshot = DashboardSnapshot(
        timestamp=int(time.time()),
        nodes=node_list,
        partitions=partitions.partition_summary(
            partition_list,
            node_list,
            public_order,
        ),
        gpu_summary=nodes.gpu_summary(node_list),
        jobs=job_list,
        stats=ClusterStats.from_records(node_list, job_list),
    )
    logger.debug(
        "Built dashboard snapshot",
        nodes=len(node_list),
        partitions=len(snapshot.partitions),
        jobs=len(job_list),
        duration_seconds=round(time.time() - start, 3),
    )
    return snapshot
