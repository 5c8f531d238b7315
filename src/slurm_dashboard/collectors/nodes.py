"""Node collector for SLURM.

Parses ``scontrol show node --oneliner`` output into Node records, estimates
GPU usage per accelerator type, and generates Prometheus metrics for node
states, CPUs, memory and GPUs.
"""

import enum
import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import structlog
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .. import slurmcli
from ..slurmcli.parsing import NULL_TOKEN, parse_key_values, split_list

logger = structlog.get_logger(__name__)

# gpu:<type>:<count>, optionally followed by socket info such as "(S:0-1)"
_GPU_GRES = re.compile(r"gpu:(\w+):(\d+)")


class NodeStatus(str, enum.Enum):
    """Simplified node status derived from the raw Slurm state."""

    IDLE = "idle"
    MIXED = "mixed"
    ALLOCATED = "allocated"
    DOWN = "down"
    DRAINING = "draining"
    UNKNOWN = "unknown"


# First match wins, so "ALLOCATED+DRAIN" is allocated and "DRAINED" draining.
_STATUS_PATTERNS: tuple[tuple[str, NodeStatus], ...] = (
    ("IDLE", NodeStatus.IDLE),
    ("MIXED", NodeStatus.MIXED),
    ("ALLOC", NodeStatus.ALLOCATED),
    ("DOWN", NodeStatus.DOWN),
    ("DRAIN", NodeStatus.DRAINING),
)


@dataclass(frozen=True)
class Node:
    """A single SLURM node.

    Free CPU and memory are computed from totals on construction and are
    not clamped, so inconsistent source data can produce negative values.
    """

    name: str | None
    state_raw: str | None
    status: NodeStatus
    cpus_total: int = 0
    cpus_alloc: int = 0
    memory_total: int = 0
    memory_alloc: int = 0
    partitions: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    has_gpu: bool = False
    gpu_type: str | None = None
    gpu_count: int = 0

    @property
    def cpus_free(self) -> int:
        return self.cpus_total - self.cpus_alloc

    @property
    def memory_free(self) -> int:
        return self.memory_total - self.memory_alloc

    def to_dict(self) -> dict:
        """Return a JSON-ready mapping including the derived fields."""
        return {
            "name": self.name,
            "state": self.state_raw,
            "status": self.status.value,
            "cpus_total": self.cpus_total,
            "cpus_alloc": self.cpus_alloc,
            "cpus_free": self.cpus_free,
            "memory_total": self.memory_total,
            "memory_alloc": self.memory_alloc,
            "memory_free": self.memory_free,
            "partitions": list(self.partitions),
            "features": list(self.features),
            "has_gpu": self.has_gpu,
            "gpu_type": self.gpu_type,
            "gpu_count": self.gpu_count,
        }


@dataclass
class GpuTypeSummary:
    """GPU counts for one accelerator type, accumulated across nodes."""

    total: int = 0
    available: int = 0
    in_use: int = 0
    down: int = 0


def derive_status(state: str | None) -> NodeStatus:
    """Map a raw Slurm state such as ``MIXED+DRAIN`` to a NodeStatus."""
    if not state:
        return NodeStatus.UNKNOWN
    for token, status in _STATUS_PATTERNS:
        if token in state:
            return status
    return NodeStatus.UNKNOWN


def _parse_gres_gpu(gres: str | None) -> tuple[str, int] | None:
    """Return ``(gpu_type, count)`` from a GRES string, or None.

    Only the first ``gpu:<type>:<count>`` entry is used. Untyped entries
    (``gpu:2``) and the ``(null)`` token are not recognized.

    Examples:
        "gpu:a100:4" -> ("a100", 4)
        "gpu:a100:4(S:0-1)" -> ("a100", 4)
        "(null)" -> None
    """
    if not gres or gres == NULL_TOKEN:
        return None
    match = _GPU_GRES.search(gres)
    if match is None:
        logger.debug("Unrecognized GRES string", gres=gres)
        return None
    return match.group(1), int(match.group(2))


def _transform_node(raw: slurmcli.types.RawNodeData) -> Node:
    """Transform a raw scontrol record into a Node.

    Args:
        raw: Raw node data validated from one scontrol line.

    Returns:
        Node with status and GPU information derived.
    """
    gpu = _parse_gres_gpu(raw.gres)
    return Node(
        name=raw.name,
        state_raw=raw.state,
        status=derive_status(raw.state),
        cpus_total=raw.cpus,
        cpus_alloc=raw.alloc_cpus,
        memory_total=raw.real_memory,
        memory_alloc=raw.alloc_memory,
        partitions=split_list(raw.partitions),
        features=split_list(raw.features),
        has_gpu=gpu is not None,
        gpu_type=gpu[0] if gpu else None,
        gpu_count=gpu[1] if gpu else 0,
    )


def parse_nodes(text: str) -> list[Node]:
    """Parse ``scontrol show node --oneliner`` output.

    Produces one Node per non-empty line in input order. Lines missing
    fields are not rejected; the missing values take their defaults.

    Args:
        text: Raw scontrol output.

    Returns:
        List of nodes.
    """
    nodes = []
    for line in text.splitlines():
        if not line.strip():
            continue
        raw = slurmcli.types.RawNodeData.model_validate(parse_key_values(line))
        nodes.append(_transform_node(raw))
    return nodes


def fetch(client: slurmcli.SlurmCliClient) -> list[Node]:
    """Fetch nodes through the Slurm CLI client.

    Args:
        client: CLI client to use for fetching.

    Returns:
        List of nodes.

    Raises:
        AcquisitionError: If scontrol could not be run.
    """
    return parse_nodes(client.show_nodes())


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def estimate_gpus_in_use(node: Node) -> int:
    """Estimate allocated GPUs on a node from its CPU occupancy.

    Slurm's node dump has no per-GPU allocation, so the CPU occupancy ratio
    stands in for GPU occupancy. A node with no CPUs counts as unoccupied.
    """
    if node.cpus_total == 0:
        return 0
    usage_ratio = node.cpus_alloc / node.cpus_total
    return _round_half_up(node.gpu_count * usage_ratio)


def gpu_summary(nodes: Iterable[Node]) -> dict[str, GpuTypeSummary]:
    """Aggregate GPU counts across nodes, grouped by GPU type.

    Idle nodes count as fully available and down nodes as fully down.
    Mixed and allocated nodes are split using :func:`estimate_gpus_in_use`.
    Draining and unknown nodes contribute to no bucket, including ``total``.

    Args:
        nodes: Parsed nodes.

    Returns:
        Mapping of GPU type to summary, in order of first appearance.
    """
    by_type: dict[str, GpuTypeSummary] = {}

    for node in nodes:
        if not node.has_gpu or node.gpu_type is None:
            continue
        summary = by_type.setdefault(node.gpu_type, GpuTypeSummary())
        count = node.gpu_count

        if node.status is NodeStatus.IDLE:
            summary.available += count
        elif node.status in (NodeStatus.MIXED, NodeStatus.ALLOCATED):
            in_use = estimate_gpus_in_use(node)
            summary.in_use += in_use
            summary.available += count - in_use
        elif node.status is NodeStatus.DOWN:
            summary.down += count
        else:
            continue
        summary.total += count

    return by_type


def _count_nodes_by_status(nodes: list[Node]) -> dict[NodeStatus, int]:
    node_count_per_status = dict.fromkeys(NodeStatus, 0)
    for node in nodes:
        node_count_per_status[node.status] += 1
    return node_count_per_status


def generate_metrics(nodes: list[Node]) -> Iterator[Metric]:
    """Generate Prometheus metrics from node data.

    Creates metrics for node counts by status, total/free CPUs and memory,
    and GPUs by type and usage bucket.

    Args:
        nodes: List of nodes.

    Yields:
        Prometheus Metric objects.
    """
    node_count_per_status = GaugeMetricFamily(
        "slurm_node_count_per_status",
        "nodes per simplified status",
        labels=["status"],
    )
    for status, count in _count_nodes_by_status(nodes).items():
        node_count_per_status.add_metric([status.value], count)
    yield node_count_per_status

    totals = (
        ("slurm_cpus_total", "Total cpus", sum(n.cpus_total for n in nodes)),
        ("slurm_cpus_free", "Total free cpus", sum(n.cpus_free for n in nodes)),
        (
            "slurm_memory_total_mb",
            "Total memory in MB",
            sum(n.memory_total for n in nodes),
        ),
        (
            "slurm_memory_free_mb",
            "Total free memory in MB",
            sum(n.memory_free for n in nodes),
        ),
    )
    for name, documentation, value in totals:
        gauge = GaugeMetricFamily(name, documentation)
        gauge.add_metric([], value)
        yield gauge

    summaries = gpu_summary(nodes)
    for bucket in ("total", "available", "in_use", "down"):
        gauge = GaugeMetricFamily(
            f"slurm_gpus_{bucket}",
            f"GPUs by type ({bucket.replace('_', ' ')})",
            labels=["gpu_type"],
        )
        for gpu_type, summary in summaries.items():
            gauge.add_metric([gpu_type], getattr(summary, bucket))
        yield gauge
