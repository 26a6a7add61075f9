"""Root conftest for the certkeeper test suite."""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from certkeeper.config.settings import default_settings  # noqa: E402
from certkeeper.metrics.collector import MetricsCollector  # noqa: E402
from certkeeper.models.certificate import CertificateResource, CertificateSpec  # noqa: E402
from certkeeper.models.workload import Workload  # noqa: E402
from certkeeper.store.memory import MemoryStore  # noqa: E402

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data() -> dict:
    """Return a small but complete configuration document."""
    return {
        "logging": {"level": "INFO", "format": "text"},
        "store": {"backend": "memory"},
        "issuer": {"organization": "Certificate Operator", "key_size": 2048},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


# ---------------------------------------------------------------------------
# Config singleton cleanup: autouse so every test gets a fresh slate
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the CertkeeperConfig singleton before and after every test."""
    from certkeeper.config.loader import CertkeeperConfig

    CertkeeperConfig.reset()
    yield
    CertkeeperConfig.reset()


# ---------------------------------------------------------------------------
# Object store and collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings():
    return default_settings()


@pytest.fixture()
def issuer_settings(settings):
    return settings.issuer


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def metrics() -> MetricsCollector:
    return MetricsCollector()


def make_certificate(
    name: str = "web",
    namespace: str = "default",
    **spec_overrides,
) -> CertificateResource:
    """Build a certificate resource with sensible spec defaults."""
    spec = {
        "common_name": f"{name}.example.com",
        "secret_name": f"{name}-tls",
        "dns_names": (f"{name}.example.com",),
    }
    spec.update(spec_overrides)
    return CertificateResource(
        name=name,
        namespace=namespace,
        spec=CertificateSpec(**spec),
        generation=1,
    )


def make_workload(
    name: str,
    namespace: str = "default",
    *,
    pod_spec: dict | None = None,
) -> Workload:
    return Workload(
        name=name,
        namespace=namespace,
        pod_spec=pod_spec or {"containers": [{"name": "app", "image": "nginx"}]},
    )


@pytest.fixture()
def cert_factory():
    return make_certificate


@pytest.fixture()
def workload_factory():
    return make_workload


# ---------------------------------------------------------------------------
# configure_logging() detaches certkeeper from the root logger; undo that so
# caplog keeps working in later tests.
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def restore_logging():
    names = ("certkeeper", "kopf", "kubernetes", "urllib3", "werkzeug")
    saved = {}
    for name in names:
        logger = logging.getLogger(name)
        saved[name] = (logger.handlers[:], logger.level, logger.propagate)
    yield
    for name, (handlers, level, propagate) in saved.items():
        logger = logging.getLogger(name)
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate
