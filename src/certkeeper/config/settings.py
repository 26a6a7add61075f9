"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from certkeeper.config import get_config

    store = get_config().settings.store
    print(store.backend, store.in_cluster)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format)."""

    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StoreSettings:
    """Where certificates, secrets and workloads are read and written."""

    backend: str
    in_cluster: bool
    kubeconfig: str | None
    context: str | None
    request_timeout_seconds: float
    conflict_retries: int


def _build_store(data: dict | None) -> StoreSettings:
    d = data or {}
    return StoreSettings(
        backend=d.get("backend", "kubernetes"),
        in_cluster=d.get("in_cluster", False),
        kubeconfig=d.get("kubeconfig"),
        context=d.get("context"),
        request_timeout_seconds=d.get("request_timeout_seconds", 30.0),
        conflict_retries=d.get("conflict_retries", 5),
    )


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuerSettings:
    """Parameters of self-signed issuance."""

    organization: str
    key_size: int
    hash_algorithm: str


def _build_issuer(data: dict | None) -> IssuerSettings:
    d = data or {}
    return IssuerSettings(
        organization=d.get("organization", "Certificate Operator"),
        key_size=d.get("key_size", 2048),
        hash_algorithm=d.get("hash_algorithm", "sha256"),
    )


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ControllerSettings:
    """Reconciliation scheduling and scope."""

    short_requeue_seconds: int
    requeue_headroom_seconds: int
    namespaces: tuple[str, ...]


def _build_controller(data: dict | None) -> ControllerSettings:
    d = data or {}
    return ControllerSettings(
        short_requeue_seconds=d.get("short_requeue_seconds", 60),
        requeue_headroom_seconds=d.get("requeue_headroom_seconds", 3600),
        namespaces=tuple(d.get("namespaces", [])),
    )


# ---------------------------------------------------------------------------
# Runtime (event delivery)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuntimeSettings:
    """Settings handed to the kopf runtime."""

    error_backoff_seconds: float
    cancellation_timeout_seconds: float
    server_timeout_seconds: int
    liveness_endpoint: str | None


def _build_runtime(data: dict | None) -> RuntimeSettings:
    d = data or {}
    return RuntimeSettings(
        error_backoff_seconds=d.get("error_backoff_seconds", 30.0),
        cancellation_timeout_seconds=d.get("cancellation_timeout_seconds", 10.0),
        server_timeout_seconds=d.get("server_timeout_seconds", 60),
        liveness_endpoint=d.get("liveness_endpoint"),
    )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricsSettings:
    enabled: bool
    bind: str
    port: int
    path: str


def _build_metrics(data: dict | None) -> MetricsSettings:
    d = data or {}
    return MetricsSettings(
        enabled=d.get("enabled", False),
        bind=d.get("bind", "0.0.0.0"),  # noqa: S104
        port=d.get("port", 8080),
        path=d.get("path", "/metrics"),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertkeeperSettings:
    logging: LoggingSettings
    store: StoreSettings
    issuer: IssuerSettings
    controller: ControllerSettings
    runtime: RuntimeSettings
    metrics: MetricsSettings


def build_settings(data: dict) -> CertkeeperSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CertkeeperConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return CertkeeperSettings(
        logging=_build_logging(data.get("logging")),
        store=_build_store(data.get("store")),
        issuer=_build_issuer(data.get("issuer")),
        controller=_build_controller(data.get("controller")),
        runtime=_build_runtime(data.get("runtime")),
        metrics=_build_metrics(data.get("metrics")),
    )


def default_settings() -> CertkeeperSettings:
    """Return the settings tree an empty configuration file produces."""
    return build_settings({})
