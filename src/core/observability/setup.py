"""
Observability bootstrap shared by the service entrypoints.
"""

import logging

from ..config import ServiceConfig, env_bool
from .logging import configure_logging
from .metrics import init_metrics
from .tracing import init_tracing

logger = logging.getLogger(__name__)


def init_observability(config: ServiceConfig, service_version: str = "1.0.0") -> None:
    """Configure logging, then tracing and metrics when an exporter is configured."""
    configure_logging(
        level=config.log_level,
        structured=config.log_structured,
        service_name=config.service_name
    )

    otel_enabled = env_bool("OTEL_ENABLED", False)
    console_export = env_bool("OTEL_CONSOLE_EXPORT", False)

    if otel_enabled or config.otlp_endpoint:
        init_tracing(
            service_name=config.service_name,
            service_version=service_version,
            otlp_endpoint=config.otlp_endpoint or None,
            console_export=console_export
        )
        init_metrics(
            service_name=config.service_name,
            otlp_endpoint=config.otlp_endpoint or None,
            console_export=console_export
        )
        logger.info("OpenTelemetry observability initialized")
