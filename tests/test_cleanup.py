"""
Tests for listing, deleting and the per-cycle rule runner.

Tests cover:
- error classification for list and delete calls
- single bulk delete and the empty no-op
- per-rule isolation and idempotence across cycles
"""

from unittest.mock import MagicMock

import pytest
from opensearchpy.exceptions import ConnectionError, NotFoundError, TransportError

from index_janitor.cleanup import clean_rule, delete_indices, list_indices, run_one_cycle
from index_janitor.config import RetentionRule
from index_janitor.errors import (
    ClusterQueryFailure,
    ConnectionFailure,
    DeleteFailure,
    ErrorClassifier,
    NotAcknowledged,
)


def _refused():
    return ConnectionError("N/A", "Connection refused", Exception("refused"))


class TestListIndices:
    def test_queries_prefix_wildcard(self, client):
        client.indices.get.return_value = {"app-2024.01.01": {}, "app-2024.01.02": {}}

        live = list_indices(client, "app")

        client.indices.get.assert_called_once_with(index="app*")
        assert live == {"app-2024.01.01", "app-2024.01.02"}

    def test_no_match_is_empty(self, client):
        assert list_indices(client, "app") == frozenset()

    def test_query_error_is_recoverable(self, client):
        client.indices.get.side_effect = TransportError(500, "search_phase_execution_exception", {})

        with pytest.raises(ClusterQueryFailure):
            list_indices(client, "app")

    def test_unreachable_is_fatal(self, client):
        client.indices.get.side_effect = _refused()

        with pytest.raises(ConnectionFailure):
            list_indices(client, "app")

    def test_classifier_can_widen_fatal_set(self, client):
        """A deployment may treat 404s as an outage."""
        client.indices.get.side_effect = NotFoundError(404, "index_not_found_exception", {})
        classifier = ErrorClassifier(fatal=(ConnectionError, NotFoundError))

        with pytest.raises(ConnectionFailure):
            list_indices(client, "app", classifier=classifier)


class TestDeleteIndices:
    def test_empty_issues_no_call(self, client):
        delete_indices(client, [])

        client.indices.delete.assert_not_called()

    def test_single_bulk_call_with_all_names(self, client):
        delete_indices(client, {"b-2023.01.02", "b-2023.01.01", "b-old"})

        client.indices.delete.assert_called_once_with(
            index=["b-2023.01.01", "b-2023.01.02", "b-old"]
        )

    def test_not_acknowledged(self, client):
        client.indices.delete.return_value = {"acknowledged": False}

        with pytest.raises(NotAcknowledged):
            delete_indices(client, ["b-old"])

    def test_not_acknowledged_is_a_delete_failure(self):
        assert issubclass(NotAcknowledged, DeleteFailure)

    def test_transport_error(self, client):
        client.indices.delete.side_effect = TransportError(403, "cluster_block_exception", {})

        with pytest.raises(DeleteFailure) as excinfo:
            delete_indices(client, ["b-old"])
        assert not isinstance(excinfo.value, NotAcknowledged)

    def test_connection_lost_is_fatal(self, client):
        client.indices.delete.side_effect = _refused()

        with pytest.raises(ConnectionFailure):
            delete_indices(client, ["b-old"])


class TestCleanRule:
    def test_two_day_scenario(self, client, today):
        """Only app-2023.12.20 falls outside the two-day window."""
        client.indices.get.return_value = {
            "app-2024.01.01": {},
            "app-2024.01.02": {},
            "app-2023.12.20": {},
        }

        outcome = clean_rule(client, RetentionRule("app", 2), today)

        assert outcome.ok
        assert outcome.kept == {"app-2024.01.02", "app-2024.01.01"}
        assert outcome.deleted == {"app-2023.12.20"}
        client.indices.delete.assert_called_once_with(index=["app-2023.12.20"])

    def test_nothing_to_delete(self, client, today):
        client.indices.get.return_value = {"app-2024.01.02": {}}

        outcome = clean_rule(client, RetentionRule("app", 2), today)

        assert outcome.deleted == frozenset()
        client.indices.delete.assert_not_called()

    def test_dry_run_skips_delete(self, client, today):
        client.indices.get.return_value = {"app-2023.12.20": {}}

        outcome = clean_rule(client, RetentionRule("app", 2), today, dry_run=True)

        assert outcome.dry_run
        assert outcome.deleted == frozenset()
        client.indices.delete.assert_not_called()

    def test_uses_passed_logger(self, client, today):
        logger = MagicMock()

        clean_rule(client, RetentionRule("app", 1), today, logger=logger)

        logger.info.assert_any_call("Reserved indices: %s", "app-2024.01.02")


class TestRunOneCycle:
    def test_rules_run_in_order(self, client, today, cleanup_config):
        run_one_cycle(cleanup_config.rules, client, today=today)

        patterns = [c.kwargs["index"] for c in client.indices.get.call_args_list]
        assert patterns == ["app*", "logs*"]

    def test_failed_listing_does_not_stop_next_rule(self, client, today, cleanup_config):
        client.indices.get.side_effect = [
            TransportError(500, "boom", {}),
            {"logs-2023.12.01": {}, "logs-2024.01.02": {}},
        ]

        report = run_one_cycle(cleanup_config.rules, client, today=today)

        assert [o.ok for o in report.outcomes] == [False, True]
        assert isinstance(report.failures[0].error, ClusterQueryFailure)
        client.indices.delete.assert_called_once_with(index=["logs-2023.12.01"])
        assert report.deleted == {"logs-2023.12.01"}

    def test_failed_delete_does_not_stop_next_rule(self, client, today, cleanup_config):
        client.indices.get.side_effect = [
            {"app-2020.01.01": {}},
            {"logs-2020.01.01": {}},
        ]
        client.indices.delete.side_effect = [
            {"acknowledged": False},
            {"acknowledged": True},
        ]

        report = run_one_cycle(cleanup_config.rules, client, today=today)

        assert isinstance(report.outcomes[0].error, NotAcknowledged)
        assert report.outcomes[1].deleted == {"logs-2020.01.01"}
        assert client.indices.delete.call_count == 2

    def test_connection_failure_propagates(self, client, today, cleanup_config):
        client.indices.get.side_effect = _refused()

        with pytest.raises(ConnectionFailure):
            run_one_cycle(cleanup_config.rules, client, today=today)
        assert client.indices.get.call_count == 1

    def test_second_run_is_a_noop(self, client, today, cleanup_config):
        """After a purge the live set equals the kept set."""
        cluster = {
            "app-2024.01.02": {},
            "app-2024.01.01": {},
            "app-2023.12.20": {},
            "logs-2023.11.01": {},
        }

        def get(index):
            prefix = index.rstrip("*")
            return {k: v for k, v in cluster.items() if k.startswith(prefix)}

        def delete(index):
            for name in index:
                cluster.pop(name)
            return {"acknowledged": True}

        client.indices.get.side_effect = get
        client.indices.delete.side_effect = delete

        first = run_one_cycle(cleanup_config.rules, client, today=today)
        second = run_one_cycle(cleanup_config.rules, client, today=today)

        assert first.deleted == {"app-2023.12.20", "logs-2023.11.01"}
        assert second.deleted == frozenset()
        assert client.indices.delete.call_count == 2
