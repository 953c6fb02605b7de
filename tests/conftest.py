"""Shared fixtures: a MagicMock standing in for the OpenSearch client."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from index_janitor.config import CleanupConfig, RetentionRule, Settings


@pytest.fixture
def client():
    """Reachable cluster with no indices that acknowledges every delete."""
    c = MagicMock(name="opensearch")
    c.info.return_value = {"version": {"number": "2.11.0"}}
    c.indices.get.return_value = {}
    c.indices.delete.return_value = {"acknowledged": True}
    c.snapshot.create_repository.return_value = {"acknowledged": True}
    return c


@pytest.fixture
def settings():
    return Settings(opensearch_url="http://search:9200", log_json=False)


@pytest.fixture
def today():
    return date(2024, 1, 2)


@pytest.fixture
def cleanup_config():
    return CleanupConfig(
        check_interval=60,
        rules=(
            RetentionRule(index_prefix="app", retain_days=2),
            RetentionRule(index_prefix="logs", retain_days=3),
        ),
    )
