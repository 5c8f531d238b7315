"""HTTP server for the Slurm Dashboard."""

import json
import logging
import os
import pathlib
import time
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import prometheus_client
import prometheus_client.core
import pydantic
import starlette.applications
import starlette.requests
import starlette.responses
import starlette.routing
import structlog

from . import collector, dashboard, slurmcli
from .collectors import jobs, nodes, partitions

CONFIG_ENV_VAR = "SLURM_DASHBOARD_CONFIG_PATH"
logger = structlog.get_logger(__name__)


class DashboardConfig(pydantic.BaseModel):
    """Configuration for the Slurm Dashboard.

    The listen address and port belong to the ASGI server running
    ``create_app``.
    """

    metrics_path: str = pydantic.Field(
        "/metrics",
        description="URL path for metrics endpoint",
    )
    command_timeout: float = pydantic.Field(
        slurmcli.DEFAULT_TIMEOUT,
        description="Timeout for each Slurm command in seconds",
        gt=0,
    )
    public_partitions: list[str] = pydantic.Field(
        default_factory=lambda: list(partitions.DEFAULT_PUBLIC_PARTITIONS),
        description="Shared partitions listed first, in display order",
    )
    queue_user_only: bool = pydantic.Field(
        True,
        description="Only list jobs of the user running the dashboard",
    )
    queue_states: list[str] = pydantic.Field(
        default_factory=lambda: [jobs.RUNNING_STATE],
        description="Job state codes passed to squeue -t",
    )
    log_level: str = pydantic.Field("INFO", description="Logging level")


def configure_logging(log_level_name: str) -> None:
    """Configure structlog for logfmt output."""
    log_level = getattr(logging, log_level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.EventRenamer("msg"),
            structlog.processors.format_exc_info,
            structlog.processors.LogfmtRenderer(
                key_order=("timestamp", "level", "msg"),
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_config(config_path: str) -> DashboardConfig:
    """Load configuration from JSON file."""
    path = pathlib.Path(config_path)
    if not path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with path.open("r") as f:
        data = json.load(f)

    return DashboardConfig(**data)


def create_registry_with_collectors(
    cli_client: slurmcli.SlurmCliClient,
    config: DashboardConfig,
) -> prometheus_client.core.CollectorRegistry:
    """Create a Prometheus registry with SLURM collectors.

    Creates a custom registry (not the global one) and registers node,
    partition and job collectors. The client is injected into the fetcher
    functions at build time.

    Args:
        cli_client: Shared CLI client for all collectors.
        config: Validated dashboard configuration.

    Returns:
        Configured Prometheus registry with injected dependencies.
    """
    registry = prometheus_client.core.CollectorRegistry()

    nodes_collector = collector.SlurmCollector(
        fetcher=lambda: nodes.fetch(cli_client),
        generator=nodes.generate_metrics,
        metric_prefix="node",
        scraper_description="scontrol",
    )
    registry.register(nodes_collector)
    logger.info("Registered collector", collector="nodes", metric_prefix="node")

    partitions_collector = collector.SlurmCollector(
        fetcher=lambda: list(
            partitions.partition_summary(
                partitions.fetch(cli_client),
                nodes.fetch(cli_client),
                config.public_partitions,
            ).values(),
        ),
        generator=partitions.generate_metrics,
        metric_prefix="partition",
        scraper_description="sinfo and scontrol",
    )
    registry.register(partitions_collector)
    logger.info(
        "Registered collector",
        collector="partitions",
        metric_prefix="partition",
    )

    jobs_collector = collector.SlurmCollector(
        fetcher=lambda: jobs.fetch(
            cli_client,
            user_only=config.queue_user_only,
            states=config.queue_states,
        ),
        generator=jobs.generate_metrics,
        metric_prefix="job",
        scraper_description="squeue",
    )
    registry.register(jobs_collector)
    logger.info("Registered collector", collector="jobs", metric_prefix="job")

    return registry


def _log_request(request: starlette.requests.Request) -> None:
    logger.info(
        "HTTP request",
        client_ip=request.client.host if request.client else "unknown",
        method=request.method,
        path=request.url.path,
    )


def _json_endpoint(
    produce: Callable[[], Any],
) -> Callable[[starlette.requests.Request], starlette.responses.Response]:
    """Wrap a data producer in the ``{"success": ..., ...}`` envelope.

    Any exception turns into a 500 response carrying its message; no
    partial data is returned.
    """

    def endpoint(request: starlette.requests.Request) -> starlette.responses.Response:
        _log_request(request)
        try:
            data = produce()
        except Exception as e:
            logger.exception("Request failed", path=request.url.path)
            return starlette.responses.JSONResponse(
                {"success": False, "error": str(e)},
                status_code=500,
            )
        return starlette.responses.JSONResponse({"success": True, "data": data})

    return endpoint


def create_starlette_app(
    cli_client: slurmcli.SlurmCliClient,
    config: DashboardConfig,
    registry: prometheus_client.core.CollectorRegistry,
) -> starlette.applications.Starlette:
    """Create a Starlette application serving dashboard data and metrics.

    Args:
        cli_client: CLI client used by the JSON endpoints.
        config: Validated dashboard configuration.
        registry: Prometheus collector registry.

    Returns:
        Configured Starlette application.
    """

    def dashboard_data() -> dict:
        return dashboard.get_dashboard_data(
            cli_client,
            public_order=config.public_partitions,
            queue_user_only=config.queue_user_only,
            queue_states=config.queue_states,
        ).to_dict()

    def node_data() -> list[dict]:
        return [node.to_dict() for node in nodes.fetch(cli_client)]

    def gpu_data() -> dict:
        return {
            gpu_type: asdict(summary)
            for gpu_type, summary in nodes.gpu_summary(
                nodes.fetch(cli_client),
            ).items()
        }

    def partition_data() -> dict:
        node_list = nodes.fetch(cli_client)
        summary = partitions.partition_summary(
            partitions.fetch(cli_client),
            node_list,
            config.public_partitions,
        )
        return {name: entry.to_dict() for name, entry in summary.items()}

    def queue_data() -> list[dict]:
        return [
            job.to_dict()
            for job in jobs.fetch(
                cli_client,
                user_only=config.queue_user_only,
                states=config.queue_states,
            )
        ]

    def health_endpoint(
        request: starlette.requests.Request,  # noqa: ARG001
    ) -> starlette.responses.Response:
        return starlette.responses.JSONResponse(
            {"status": "ok", "timestamp": int(time.time())},
        )

    def metrics_endpoint(
        request: starlette.requests.Request,
    ) -> starlette.responses.Response:
        """Generate and serve Prometheus metrics.

        Args:
            request: The incoming HTTP request.

        Returns:
            PlainTextResponse with metrics in Prometheus exposition format.
        """
        metrics_output = prometheus_client.generate_latest(registry)
        _log_request(request)
        return starlette.responses.PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    routes = [
        starlette.routing.Route(
            "/api/data",
            _json_endpoint(dashboard_data),
            methods=["GET"],
        ),
        starlette.routing.Route(
            "/api/nodes",
            _json_endpoint(node_data),
            methods=["GET"],
        ),
        starlette.routing.Route("/api/gpu", _json_endpoint(gpu_data), methods=["GET"]),
        starlette.routing.Route(
            "/api/partitions",
            _json_endpoint(partition_data),
            methods=["GET"],
        ),
        starlette.routing.Route(
            "/api/queue",
            _json_endpoint(queue_data),
            methods=["GET"],
        ),
        starlette.routing.Route("/health", health_endpoint, methods=["GET"]),
        starlette.routing.Route(config.metrics_path, metrics_endpoint, methods=["GET"]),
    ]

    return starlette.applications.Starlette(routes=routes)


def create_dashboard(
    config: DashboardConfig,
    runner: slurmcli.CommandRunner | None = None,
) -> starlette.applications.Starlette:
    """Construct the dashboard ASGI app from validated config."""
    cli_client = slurmcli.SlurmCliClient(
        timeout=config.command_timeout,
        runner=runner,
    )
    logger.info("Created shared CLI client", timeout=config.command_timeout)

    registry = create_registry_with_collectors(cli_client=cli_client, config=config)

    return create_starlette_app(
        cli_client=cli_client,
        config=config,
        registry=registry,
    )


def create_app(config_path: str | None = None) -> starlette.applications.Starlette:
    """Create the dashboard ASGI app using a config path or environment default."""
    resolved_path = config_path or os.environ.get(CONFIG_ENV_VAR, "/config.json")
    config = load_config(resolved_path)
    configure_logging(config.log_level)
    return create_dashboard(config)
