"""
Service Configuration

Reads the delivery-loop settings from environment variables (optionally
loaded from a .env file). Each component gets its own small config object
so it can be built explicitly in tests without touching the environment.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def env_str(key: str, default: str = "") -> str:
    value = os.getenv(key, "").strip()
    return value or default


def env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {key}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive (got {value}), using {default}")
        return default
    return value


def env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {key}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive (got {value}), using {default}")
        return default
    return value


def env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def split_csv(raw: str) -> List[str]:
    """Split a comma separated list, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_reminder_offsets(raw: str) -> List[timedelta]:
    """
    Parse reminder offsets given in minutes ("1440,60").

    Invalid entries are skipped; an empty result falls back to 24 hours.
    """
    offsets = []
    for part in split_csv(raw):
        try:
            minutes = int(part)
        except ValueError:
            logger.warning(f"Invalid reminder offset: {part!r}")
            continue
        if minutes <= 0:
            logger.warning(f"Invalid reminder offset: {part!r}")
            continue
        offsets.append(timedelta(minutes=minutes))
    if not offsets:
        offsets = [timedelta(hours=24)]
    return offsets


@dataclass
class PublisherConfig:
    poll_interval: float = 2.0
    batch_size: int = 50
    send_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "PublisherConfig":
        return cls(
            poll_interval=env_float("OUTBOX_POLL_INTERVAL", 2.0),
            batch_size=env_int("OUTBOX_BATCH_SIZE", 50),
            send_timeout=env_float("OUTBOX_SEND_TIMEOUT", 10.0),
        )


@dataclass
class WorkerConfig:
    poll_interval: float = 2.0
    batch_size: int = 50
    backoff_seconds: int = 60
    max_attempts: int = 5

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        return cls(
            poll_interval=env_float("SCHEDULER_POLL_INTERVAL", 2.0),
            batch_size=env_int("SCHEDULER_BATCH_SIZE", 50),
            backoff_seconds=env_int("SCHEDULER_BACKOFF_SECONDS", 60),
            max_attempts=env_int("SCHEDULER_MAX_ATTEMPTS", 5),
        )


@dataclass
class KafkaConfig:
    brokers: List[str] = field(default_factory=list)
    group_id: str = "scheduler-service"
    consume_topic: str = "booking.reminder.requested.v1"

    @property
    def enabled(self) -> bool:
        return bool(self.brokers)

    @classmethod
    def from_env(cls) -> "KafkaConfig":
        return cls(
            brokers=split_csv(env_str("KAFKA_BROKERS")),
            group_id=env_str("KAFKA_GROUP_ID", "scheduler-service"),
            consume_topic=env_str("KAFKA_CONSUME_TOPIC", "booking.reminder.requested.v1"),
        )


@dataclass
class ServiceConfig:
    service_name: str = "appremind"
    log_level: str = "INFO"
    log_structured: bool = True
    otlp_endpoint: str = ""
    shutdown_timeout: float = 10.0
    reminder_offsets: List[timedelta] = field(
        default_factory=lambda: [timedelta(hours=24), timedelta(hours=1)]
    )
    publisher: PublisherConfig = field(default_factory=PublisherConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)

    @classmethod
    def from_env(cls, default_service: str = "appremind") -> "ServiceConfig":
        return cls(
            service_name=env_str("SERVICE_NAME", default_service),
            log_level=env_str("LOG_LEVEL", "INFO").upper(),
            log_structured=env_bool("LOG_STRUCTURED", True),
            otlp_endpoint=env_str("OTEL_EXPORTER_OTLP_ENDPOINT"),
            shutdown_timeout=env_float("SHUTDOWN_TIMEOUT", 10.0),
            reminder_offsets=parse_reminder_offsets(env_str("REMINDER_OFFSETS_MINUTES", "1440,60")),
            publisher=PublisherConfig.from_env(),
            worker=WorkerConfig.from_env(),
            kafka=KafkaConfig.from_env(),
        )
