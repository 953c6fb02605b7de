"""OpenSearch client utilities."""
from __future__ import annotations

from typing import Any, Optional, Tuple
from urllib.parse import urlparse

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from .config import Settings, load_settings
from .errors import ConfigurationError, ConnectionFailure
from .logging import get_logger


LOGGER = get_logger(__name__)


# ---------------------------------------------------------------------------
# Low-level client construction
# ---------------------------------------------------------------------------

class JanitorOpenSearch(OpenSearch):
    """OpenSearch client that carries the settings it was built from."""

    settings: Settings

    def __init__(self, *args: Any, settings: Settings, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.settings = settings


def _split_url(url: str) -> Tuple[str, int, str]:
    parsed = urlparse(url if "://" in url else f"http://{url}")
    scheme = parsed.scheme or "http"
    if scheme not in ("http", "https"):
        raise ConfigurationError(f"Unsupported scheme in cluster URL {url!r}")
    try:
        port = parsed.port or (443 if scheme == "https" else 9200)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid cluster URL {url!r}: {exc}") from exc
    return parsed.hostname or "127.0.0.1", port, scheme


def validate_url(url: str) -> str:
    """Return ``url`` unchanged, or raise ``ConfigurationError`` if it cannot be used."""
    _split_url(url)
    return url


def build_client(settings: Optional[Settings] = None) -> JanitorOpenSearch:
    """Construct (but do not contact) a client for ``settings.opensearch_url``.

    No retries: a failed call is retried by the next scheduled cycle.
    """
    if not settings:
        settings = load_settings()
    host, port, scheme = _split_url(settings.opensearch_url)
    ssl = scheme == "https"
    http_auth = (
        (settings.opensearch_user, settings.opensearch_password)
        if settings.opensearch_user and settings.opensearch_password
        else None
    )

    return JanitorOpenSearch(
        hosts=[{"host": host, "port": port, "scheme": scheme}],
        http_compress=True,
        http_auth=http_auth,
        use_ssl=ssl,
        verify_certs=ssl and settings.opensearch_verify_certs,
        ssl_assert_hostname=False if not ssl else None,
        ssl_show_warn=ssl,
        timeout=settings.opensearch_timeout_secs,
        max_retries=0,
        retry_on_timeout=False,
        settings=settings,
    )


def ping(client: OpenSearch) -> str:
    """Handshake with the cluster and return its version number.

    Any failure, transport or HTTP, means the cluster is not usable and is
    reported as ``ConnectionFailure``.
    """
    try:
        info = client.info()
    except OpenSearchException as exc:
        raise ConnectionFailure(
            f"Cluster ping failed: {exc.__class__.__name__}: {getattr(exc, 'error', str(exc))}"
        ) from exc
    return str((info.get("version") or {}).get("number", "unknown"))


def connect(settings: Optional[Settings] = None) -> JanitorOpenSearch:
    """Build a client and ping it once. Raises ``ConnectionFailure``."""
    if not settings:
        settings = load_settings()
    LOGGER.info("Connecting to OpenSearch at %s", settings.opensearch_url)
    client = build_client(settings)
    version = ping(client)
    LOGGER.info("Cluster at %s answered, version %s", settings.opensearch_url, version)
    return client


__all__ = ["JanitorOpenSearch", "build_client", "connect", "ping", "validate_url"]
