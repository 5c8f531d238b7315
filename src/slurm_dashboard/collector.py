"""Prometheus adapter over the Slurm CLI collectors.

Each scrape runs the Slurm command behind one collector module, then hands
the parsed records to that module's ``generate_metrics``. Nothing is cached
between scrapes.
"""

import time
from collections.abc import Callable, Iterator
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Fetcher: TypeAlias = Callable[[], list[T]]
MetricsGenerator: TypeAlias = Callable[[list[T]], Iterator[Metric]]


class SlurmCollector(Collector, Generic[T]):
    """Registry collector pairing a Slurm poll with a metric generator.

    ``fetcher`` runs ``scontrol``, ``sinfo`` or ``squeue`` and returns parsed
    records; ``generator`` turns them into metric families. A failed poll
    (usually an ``AcquisitionError``) is logged and counted in
    ``slurm_<prefix>_scrape_error`` instead of failing the whole exposition.
    """

    def __init__(
        self,
        fetcher: Fetcher[T],
        generator: MetricsGenerator[T],
        metric_prefix: str,
        scraper_description: str,
    ):
        """Initialize the collector.

        Args:
            fetcher: Polls Slurm and returns records, e.g.
                ``lambda: nodes.fetch(client)``.
            generator: Builds metric families from the records.
            metric_prefix: Used in the scrape metric names ("node", "job").
            scraper_description: Command name shown in the duration help text.
        """
        self._fetcher = fetcher
        self._generator = generator
        self._metric_prefix = metric_prefix
        self._scraper_desc = scraper_description
        self._error_count = 0

    def fetch_metrics(self) -> tuple[list[T], float]:
        """Poll Slurm once.

        Returns:
            The parsed records and the poll duration in seconds.
        """
        start = time.time()
        data = self._fetcher()
        return data, time.time() - start

    def collect(self) -> Iterator[Metric]:
        """Yield scrape duration, error count, then the domain metrics.

        Domain metrics are omitted when the poll fails; the duration is then
        reported as -1.
        """
        data: list[T] | None = None
        try:
            data, duration_value = self.fetch_metrics()
        except Exception:
            logger.exception(
                "Slurm poll failed during scrape",
                metric_prefix=self._metric_prefix,
                source=self._scraper_desc,
            )
            self._error_count += 1
            duration_value = -1.0

        scrape_duration = GaugeMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_duration",
            f"time spent running {self._scraper_desc} in seconds, "
            f"-1 if the command failed",
        )
        scrape_duration.add_metric([], duration_value)
        yield scrape_duration

        error_counter = CounterMetricFamily(
            f"slurm_{self._metric_prefix}_scrape_error",
            f"failed {self._scraper_desc} polls for {self._metric_prefix} metrics",
        )
        error_counter.add_metric([], self._error_count)
        yield error_counter

        if data is not None:
            yield from self._generator(data)
