"""
Tests for environment configuration.
"""

from datetime import timedelta

from src.core.config import (
    KafkaConfig,
    ServiceConfig,
    WorkerConfig,
    env_bool,
    env_int,
    parse_reminder_offsets,
    split_csv,
)
from src.core.database import DatabaseBackend, DatabaseConfig


class TestReminderOffsets:
    """Test REMINDER_OFFSETS_MINUTES parsing."""

    def test_default_pair(self):
        assert parse_reminder_offsets("1440,60") == [timedelta(hours=24), timedelta(hours=1)]

    def test_invalid_entries_skipped(self):
        assert parse_reminder_offsets("30, abc, -5, 0") == [timedelta(minutes=30)]

    def test_empty_falls_back_to_a_day(self):
        assert parse_reminder_offsets("") == [timedelta(hours=24)]


class TestEnvHelpers:
    """Test env readers."""

    def test_split_csv_drops_blanks(self):
        assert split_csv("a, b,,c ,") == ["a", "b", "c"]

    def test_env_int_invalid_uses_default(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_BATCH_SIZE", "lots")
        assert env_int("SCHEDULER_BATCH_SIZE", 50) == 50

    def test_env_int_non_positive_uses_default(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_BACKOFF_SECONDS", "0")
        assert env_int("SCHEDULER_BACKOFF_SECONDS", 60) == 60

    def test_env_bool(self, monkeypatch):
        monkeypatch.setenv("LOG_STRUCTURED", "false")
        assert env_bool("LOG_STRUCTURED", True) is False
        monkeypatch.delenv("LOG_STRUCTURED")
        assert env_bool("LOG_STRUCTURED", True) is True


class TestServiceConfig:
    """Test ServiceConfig.from_env."""

    def test_defaults(self, monkeypatch):
        for name in ("KAFKA_BROKERS", "SCHEDULER_BACKOFF_SECONDS", "SCHEDULER_MAX_ATTEMPTS", "SERVICE_NAME"):
            monkeypatch.delenv(name, raising=False)

        config = ServiceConfig.from_env("scheduler-service")

        assert config.service_name == "scheduler-service"
        assert config.worker == WorkerConfig()
        assert config.worker.backoff_seconds == 60
        assert config.worker.max_attempts == 5
        assert not config.kafka.enabled

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("KAFKA_BROKERS", "k1:9092,k2:9092")
        monkeypatch.setenv("SCHEDULER_BACKOFF_SECONDS", "15")
        monkeypatch.setenv("OUTBOX_BATCH_SIZE", "10")
        monkeypatch.setenv("REMINDER_OFFSETS_MINUTES", "120")

        config = ServiceConfig.from_env()

        assert config.kafka == KafkaConfig(brokers=["k1:9092", "k2:9092"])
        assert config.kafka.enabled
        assert config.worker.backoff_seconds == 15
        assert config.publisher.batch_size == 10
        assert config.reminder_offsets == [timedelta(hours=2)]

    def test_database_config(self):
        config = DatabaseConfig(backend="postgresql", postgres_url="postgresql://u:p@db:5432/x")
        assert config.backend == DatabaseBackend.POSTGRESQL
        assert "postgres" in repr(config)
