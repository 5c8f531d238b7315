"""Tests for SlurmCollector wired with real collector pipelines.

These tests exercise the full pipeline through the public collect() method:
raw command output → parse → Prometheus metric families. SlurmCollector
concerns (scrape metadata, fresh polling and error handling) are tested here
using the real collector wiring rather than synthetic stubs.
"""

from unittest.mock import MagicMock

import pytest

from slurm_dashboard import collector
from slurm_dashboard.collectors import jobs, nodes
from slurm_dashboard.slurmcli import client

SQUEUE_TEXT = (
    "JOBID NAME USER ST TIME NODES CPUS PARTITION NODELIST(REASON)\n"
    "42 train alice R 1:00 1 8 gpu g1\n"
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_client() -> MagicMock:
    """Mock SlurmCliClient with no pre-configured return values."""
    return MagicMock(spec=client.SlurmCliClient)


@pytest.fixture
def job_collector(mock_client: MagicMock) -> collector.SlurmCollector:
    """SlurmCollector wired with the real jobs pipeline."""
    return collector.SlurmCollector(
        fetcher=lambda: jobs.fetch(mock_client),
        generator=jobs.generate_metrics,
        metric_prefix="job",
        scraper_description="squeue",
    )


@pytest.fixture
def node_collector(mock_client: MagicMock) -> collector.SlurmCollector:
    """SlurmCollector wired with the real nodes pipeline."""
    return collector.SlurmCollector(
        fetcher=lambda: nodes.fetch(mock_client),
        generator=nodes.generate_metrics,
        metric_prefix="node",
        scraper_description="scontrol",
    )


# ---------------------------------------------------------------------------
# Scrape metadata
# ---------------------------------------------------------------------------


def test_collect_always_yields_scrape_metadata(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Scrape duration and error metrics are always present."""
    mock_client.show_queue.return_value = ""
    metrics = {m.name: m for m in job_collector.collect()}
    assert "slurm_job_scrape_duration" in metrics
    assert "slurm_job_scrape_error" in metrics


def test_collect_scrape_duration_non_negative_on_fetch(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Scrape duration is >= 0 when data is fetched."""
    mock_client.show_queue.return_value = ""
    metrics = {m.name: m for m in job_collector.collect()}
    assert metrics["slurm_job_scrape_duration"].samples[0].value >= 0.0


def test_collect_error_count_starts_at_zero(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Error counter is 0 on a healthy scrape."""
    mock_client.show_queue.return_value = ""
    metrics = {m.name: m for m in job_collector.collect()}
    assert metrics["slurm_job_scrape_error"].samples[0].value == 0


def test_collect_metric_prefix_in_metadata_names(
    mock_client: MagicMock,
    node_collector: collector.SlurmCollector,
):
    """Metadata metric names incorporate the configured metric_prefix."""
    mock_client.show_nodes.return_value = ""
    metrics = {m.name: m for m in node_collector.collect()}
    assert "slurm_node_scrape_duration" in metrics
    assert "slurm_node_scrape_error" in metrics


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


def test_collect_increments_error_on_acquisition_failure(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Error count increases by one for each failed fetch."""
    mock_client.show_queue.side_effect = client.AcquisitionError("Command failed")

    first = {m.name: m for m in job_collector.collect()}
    assert first["slurm_job_scrape_error"].samples[0].value == 1

    second = {m.name: m for m in job_collector.collect()}
    assert second["slurm_job_scrape_error"].samples[0].value == 2


def test_collect_omits_domain_metrics_on_failure(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Domain metrics are not yielded when the fetcher raises."""
    mock_client.show_queue.side_effect = client.AcquisitionError("timeout")
    metrics = {m.name: m for m in job_collector.collect()}
    assert "slurm_job_count" not in metrics
    assert metrics["slurm_job_scrape_duration"].samples[0].value == -1.0


def test_collect_recovers_after_failure(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Domain metrics reappear once the fetcher stops failing, errors persist."""
    mock_client.show_queue.side_effect = client.AcquisitionError("down")
    list(job_collector.collect())

    mock_client.show_queue.side_effect = None
    mock_client.show_queue.return_value = SQUEUE_TEXT

    metrics = {m.name: m for m in job_collector.collect()}
    assert len(metrics["slurm_job_count"].samples) == 1
    assert metrics["slurm_job_scrape_error"].samples[0].value == 1


# ---------------------------------------------------------------------------
# Fresh polling
# ---------------------------------------------------------------------------


def test_collect_polls_on_every_scrape(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """Each scrape runs the command again; nothing is cached."""
    mock_client.show_queue.return_value = ""

    list(job_collector.collect())
    list(job_collector.collect())
    list(job_collector.collect())

    assert mock_client.show_queue.call_count == 3


def test_collect_reflects_latest_output(
    mock_client: MagicMock,
    job_collector: collector.SlurmCollector,
):
    """A second scrape sees changed output immediately."""
    mock_client.show_queue.return_value = ""
    first = {m.name: m for m in job_collector.collect()}
    assert first["slurm_job_count"].samples == []

    mock_client.show_queue.return_value = SQUEUE_TEXT
    second = {m.name: m for m in job_collector.collect()}
    assert second["slurm_job_count"].samples[0].labels == {
        "state": "R",
        "partition": "gpu",
    }


# ---------------------------------------------------------------------------
# Nodes pipeline integration
# ---------------------------------------------------------------------------


def test_collect_nodes_pipeline(
    mock_client: MagicMock,
    node_collector: collector.SlurmCollector,
):
    """scontrol text flows through to GPU gauges."""
    mock_client.show_nodes.return_value = (
        "NodeName=g1 CPUAlloc=8 CPUTot=32 Gres=gpu:h100:8 State=MIXED\n"
    )
    metrics = {m.name: m for m in node_collector.collect()}

    in_use = metrics["slurm_gpus_in_use"].samples[0]
    assert in_use.labels == {"gpu_type": "h100"}
    assert in_use.value == 2
    assert metrics["slurm_gpus_available"].samples[0].value == 6
