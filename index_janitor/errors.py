"""Error taxonomy for the maintenance jobs.

Only connection-level failures end the cleanup loop. Everything else is
contained to the rule that raised it and surfaces through the logs.
"""
from __future__ import annotations

from typing import Tuple, Type

from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import OpenSearchException


class JanitorError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(JanitorError):
    """Configuration file is missing, unreadable or malformed."""


class ConnectionFailure(JanitorError):
    """The cluster cannot be reached. Fatal to the cleanup loop."""


class ClusterQueryFailure(JanitorError):
    """A read query failed on a reachable cluster."""


class DeleteFailure(JanitorError):
    """The bulk index delete request failed."""


class NotAcknowledged(DeleteFailure):
    """The cluster answered the delete request without acknowledging it."""


class SnapshotFailure(JanitorError):
    """Repository registration or snapshot creation failed."""


DEFAULT_FATAL: Tuple[Type[BaseException], ...] = (OpenSearchConnectionError,)


class ErrorClassifier:
    """Map client exceptions onto the janitor taxonomy.

    ``fatal`` lists the exception types that mean the cluster is unreachable.
    Anything else is wrapped in the recoverable type chosen by the caller.
    """

    def __init__(self, fatal: Tuple[Type[BaseException], ...] = DEFAULT_FATAL) -> None:
        self.fatal = tuple(fatal)
        # everything a cluster call may raise that callers translate
        self.catchable: Tuple[Type[BaseException], ...] = (OpenSearchException,) + self.fatal

    def is_fatal(self, exc: BaseException) -> bool:
        return isinstance(exc, ConnectionFailure) or isinstance(exc, self.fatal)

    def classify(
        self,
        exc: BaseException,
        recoverable: Type[JanitorError],
        context: str,
    ) -> JanitorError:
        if isinstance(exc, JanitorError):
            return exc
        detail = f"{context}: {exc.__class__.__name__}: {getattr(exc, 'error', str(exc))}"
        if self.is_fatal(exc):
            return ConnectionFailure(detail)
        return recoverable(detail)


__all__ = [
    "ClusterQueryFailure",
    "ConfigurationError",
    "ConnectionFailure",
    "DEFAULT_FATAL",
    "DeleteFailure",
    "ErrorClassifier",
    "JanitorError",
    "NotAcknowledged",
    "SnapshotFailure",
]
