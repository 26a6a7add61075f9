"""certkeeper configuration loader.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CertkeeperConfig(config_file="/etc/certkeeper/config.yaml")

    # 2. Any module retrieves it afterwards
    from certkeeper.config import get_config
    cfg = get_config()
    cfg.settings.store.backend  # typed access

    # 3. Dynamic access
    cfg.get("metrics.port", default=8080)

The file is YAML (``.yaml``/``.yml``) or JSON.  ``${VAR}`` and
``${VAR:-default}`` strings are resolved from the environment before
the document is validated against the bundled ``schema.json``.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from certkeeper.config.settings import CertkeeperSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MIN_RSA_KEY_SIZE = 2048

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CertkeeperConfig | None = None


def get_config() -> CertkeeperConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CertkeeperConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CertkeeperConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _expand_placeholder(value: str, path: str) -> str:
    m = _ENV_RE.match(value)
    if m is None:
        return value
    name, fallback = m.group(1), m.group(2)
    if name in os.environ:
        return os.environ[name]
    if fallback is None:
        msg = f"${{{name}}} (used at {path}) is unset and has no :-default"
        raise ConfigValidationError([msg])
    return fallback


def _expand_env(node: Any, path: str = "") -> Any:  # noqa: ANN401
    """Return a copy of *node* with every placeholder string expanded."""
    if isinstance(node, str):
        return _expand_placeholder(node, path or "(root)")
    if isinstance(node, dict):
        return {k: _expand_env(v, f"{path}.{k}" if path else str(k)) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_env(v, f"{path}[{i}]") for i, v in enumerate(node)]
    return node


def _read_document(path: Path) -> dict:
    with path.open(encoding="utf-8") as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Top level of {path} must be a mapping"
        raise ConfigValidationError([msg])
    return data


def _schema_errors(data: dict) -> list[str]:
    schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    validator = Draft202012Validator(schema)
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = ".".join(str(p) for p in err.absolute_path) or "(root)"
        errors.append(f"{location}: {err.message}")
    return errors


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertkeeperConfig:
    """Central configuration for the certkeeper controller.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        """Load, resolve, validate and materialise *config_file*."""
        global _instance  # noqa: PLW0603

        self._path = Path(config_file)
        self._data = self._load()
        self._settings: CertkeeperSettings = build_settings(self._data)
        _instance = self

    # -- lifecycle ----------------------------------------------------------

    def _load(self) -> dict:
        """Read, expand placeholders, validate against the schema, cross-check.

        Placeholders are expanded first, so ``${LOG_LEVEL:-INFO}`` is
        validated as the value it expands to.
        """
        data = _expand_env(_read_document(self._path))
        errors = _schema_errors(data)
        if errors:
            raise ConfigValidationError(errors)
        self.additional_checks(data)
        return data

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> CertkeeperSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict:
        return self._data

    @property
    def path(self) -> Path:
        return self._path

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Return the raw value at *dotted* path (``"metrics.port"``)."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    @staticmethod
    def additional_checks(data: dict) -> None:
        """Semantic & cross-field validation run after schema validation."""
        errors: list[str] = []
        warnings: list[str] = []

        store = data.get("store") or {}
        issuer = data.get("issuer") or {}
        controller = data.get("controller") or {}
        metrics = data.get("metrics") or {}
        runtime = data.get("runtime") or {}

        # -- store --
        if store.get("in_cluster") and store.get("kubeconfig"):
            errors.append(
                "store.kubeconfig must not be set when store.in_cluster is true",
            )
        if store.get("backend") == "memory":
            warnings.append(
                "store.backend is 'memory'; nothing is persisted and no "
                "cluster objects are touched",
            )

        # -- issuer --
        key_size = issuer.get("key_size", _MIN_RSA_KEY_SIZE)
        if key_size < _MIN_RSA_KEY_SIZE:
            errors.append(
                f"issuer.key_size ({key_size}) must be >= {_MIN_RSA_KEY_SIZE}",
            )

        # -- controller --
        short = controller.get("short_requeue_seconds", 60)
        headroom = controller.get("requeue_headroom_seconds", 3600)
        if headroom and short > headroom:
            warnings.append(
                f"controller.short_requeue_seconds ({short}) exceeds "
                f"controller.requeue_headroom_seconds ({headroom})",
            )

        # -- metrics / runtime --
        liveness = runtime.get("liveness_endpoint") or ""
        if metrics.get("enabled") and liveness.endswith(f":{metrics.get('port', 8080)}"):
            errors.append(
                "runtime.liveness_endpoint must not use the same port as metrics.port",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    def reload_settings(self) -> CertkeeperSettings:
        """Re-read the config file and return a fresh settings tree.

        Does not reset the singleton.
        """
        return build_settings(self._load())

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        return f"<CertkeeperConfig config_file={self._path}>"
