"""Partition collector for SLURM.

Parses ``sinfo`` partition rows, rolls node capacity up per partition and
orders the result with shared partitions ahead of lab partitions.
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import asdict, dataclass

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..slurmcli.parsing import iter_table_rows
from .nodes import Node, NodeStatus

DEFAULT_MARKER = "*"
MIN_PARTITION_COLUMNS = 5

# Shared partitions listed first, in this order; everything else sorts after
# them alphabetically.
DEFAULT_PUBLIC_PARTITIONS = (
    "batch",
    "gpu",
    "mpi",
    "interactive",
    "largemem",
    "preempt",
)


@dataclass(frozen=True)
class Partition:
    """A single SLURM partition row."""

    name: str
    is_default: bool = False
    available: bool = False
    time_limit: str = ""
    nodes_count: int = 0
    state: str = ""


@dataclass(frozen=True)
class PartitionSummary:
    """Node and CPU capacity of one partition."""

    name: str
    total_nodes: int
    idle_nodes: int
    mixed_nodes: int
    allocated_nodes: int
    down_nodes: int
    draining_nodes: int
    total_cpus: int
    available_cpus: int
    has_gpu: bool
    time_limit: str
    is_default: bool
    available: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _transform_partition(raw: slurmcli.types.RawPartitionData) -> Partition:
    """Strip the default marker from the name and normalize availability."""
    name = raw.partition
    is_default = name.endswith(DEFAULT_MARKER)
    if is_default:
        name = name[: -len(DEFAULT_MARKER)]
    return Partition(
        name=name,
        is_default=is_default,
        available=raw.avail == "up",
        time_limit=raw.timelimit,
        nodes_count=raw.nodes,
        state=raw.state,
    )


def parse_partitions(text: str) -> list[Partition]:
    """Parse ``sinfo -o "%P %a %l %D %t"`` output.

    The header line is skipped and rows with fewer than five fields are
    dropped. sinfo prints one row per node state within a partition, so a
    name may appear more than once.

    Args:
        text: Raw sinfo output including the header.

    Returns:
        List of partitions in output order.
    """
    return [
        _transform_partition(slurmcli.types.RawPartitionData.model_validate(row))
        for row in iter_table_rows(
            text,
            slurmcli.types.PARTITION_COLUMNS,
            MIN_PARTITION_COLUMNS,
        )
    ]


def fetch(client: slurmcli.SlurmCliClient) -> list[Partition]:
    """Fetch partitions through the Slurm CLI client.

    Raises:
        AcquisitionError: If sinfo could not be run.
    """
    return parse_partitions(client.show_partitions())


def partition_sort_key(name: str, public_order: Sequence[str]) -> tuple[int, str]:
    """Sort key placing ``public_order`` names first, then the rest by name.

    Names missing from ``public_order`` get a rank past every listed index.
    """
    try:
        rank = public_order.index(name)
    except ValueError:
        rank = len(public_order)
    return rank, name


def sort_partition_names(
    names: Iterable[str],
    public_order: Sequence[str] = DEFAULT_PUBLIC_PARTITIONS,
) -> list[str]:
    """Order partition names: listed public ones first, lab ones after."""
    return sorted(names, key=lambda name: partition_sort_key(name, public_order))


def _summarize(partition: Partition, nodes: list[Node]) -> PartitionSummary:
    members = [node for node in nodes if partition.name in node.partitions]

    def count(status: NodeStatus) -> int:
        return sum(1 for node in members if node.status is status)

    return PartitionSummary(
        name=partition.name,
        total_nodes=len(members),
        idle_nodes=count(NodeStatus.IDLE),
        mixed_nodes=count(NodeStatus.MIXED),
        allocated_nodes=count(NodeStatus.ALLOCATED),
        down_nodes=count(NodeStatus.DOWN),
        draining_nodes=count(NodeStatus.DRAINING),
        total_cpus=sum(node.cpus_total for node in members),
        available_cpus=sum(node.cpus_free for node in members),
        has_gpu=any(node.has_gpu for node in members),
        time_limit=partition.time_limit,
        is_default=partition.is_default,
        available=partition.available,
    )


def partition_summary(
    partitions: Iterable[Partition],
    nodes: Iterable[Node],
    public_order: Sequence[str] = DEFAULT_PUBLIC_PARTITIONS,
) -> dict[str, PartitionSummary]:
    """Summarize node capacity per partition.

    A node belongs to every partition listed in its ``partitions``. Repeated
    partition rows collapse into one entry; the last row's attributes win.

    Args:
        partitions: Parsed partitions.
        nodes: Parsed nodes.
        public_order: Shared partitions to list first, in order.

    Returns:
        Mapping of partition name to summary, ordered by
        :func:`sort_partition_names`.
    """
    nodes = list(nodes)
    summaries = {
        partition.name: _summarize(partition, nodes) for partition in partitions
    }
    return {
        name: summaries[name]
        for name in sort_partition_names(summaries, public_order)
    }


def generate_metrics(summaries: list[PartitionSummary]) -> Iterator[Metric]:
    """Generate Prometheus metrics from partition summaries.

    Args:
        summaries: Partition summaries.

    Yields:
        Prometheus Metric objects.
    """
    partition_nodes = GaugeMetricFamily(
        "slurm_partition_nodes",
        "nodes per partition and simplified status",
        labels=["partition", "status"],
    )
    partition_cpus_total = GaugeMetricFamily(
        "slurm_partition_cpus_total",
        "Total cpus per partition",
        labels=["partition"],
    )
    partition_cpus_available = GaugeMetricFamily(
        "slurm_partition_cpus_available",
        "Available cpus per partition",
        labels=["partition"],
    )

    for summary in summaries:
        for status, value in (
            (NodeStatus.IDLE, summary.idle_nodes),
            (NodeStatus.MIXED, summary.mixed_nodes),
            (NodeStatus.ALLOCATED, summary.allocated_nodes),
            (NodeStatus.DOWN, summary.down_nodes),
            (NodeStatus.DRAINING, summary.draining_nodes),
        ):
            partition_nodes.add_metric([summary.name, status.value], value)
        partition_cpus_total.add_metric([summary.name], summary.total_cpus)
        partition_cpus_available.add_metric([summary.name], summary.available_cpus)

    yield partition_nodes
    yield partition_cpus_total
    yield partition_cpus_available
