"""Object store registry.

Loads the configured store backend by name and returns an initialised
:class:`ObjectStore` instance.  Supports built-in backends
(``kubernetes``, ``memory``) and custom backends via the ``ext:`` prefix.

Usage::

    from certkeeper.store.registry import load_store

    store = load_store(settings.store)
    cert = store.get_certificate("default", "web-tls")
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from certkeeper.store.base import ObjectStore, StoreError

if TYPE_CHECKING:
    from certkeeper.config.settings import StoreSettings

log = logging.getLogger(__name__)

# Maps config string → (module_path, class_name)
_BUILTIN_BACKENDS: dict[str, tuple[str, str]] = {
    "kubernetes": ("certkeeper.store.kubernetes", "KubernetesStore"),
    "memory": ("certkeeper.store.memory", "MemoryStore"),
}

_REQUIRED_METHODS = (
    "get_certificate",
    "update_certificate",
    "update_certificate_status",
    "get_secret",
    "create_secret",
    "update_secret",
    "list_workloads",
    "update_workload",
)


def load_store(settings: StoreSettings) -> ObjectStore:
    """Load and return the configured object store.

    Raises
    ------
    StoreError
        If the backend cannot be loaded.

    """
    backend_name = settings.backend

    if backend_name in _BUILTIN_BACKENDS:
        mod_path, cls_name = _BUILTIN_BACKENDS[backend_name]
        return _instantiate(mod_path, cls_name, backend_name, settings)
    if backend_name.startswith("ext:"):
        fqn = backend_name[4:]
        module_path, _, cls_name = fqn.rpartition(".")
        if not module_path:
            msg = (
                f"Invalid external store backend '{fqn}': must be fully "
                "qualified (e.g. 'mypackage.module.ClassName')"
            )
            raise StoreError(msg)
        return _instantiate(module_path, cls_name, backend_name, settings)
    msg = (
        f"Unknown store backend '{backend_name}'; "
        f"built-in options: {sorted(_BUILTIN_BACKENDS)}. "
        f"Use 'ext:mypackage.module.ClassName' for custom backends."
    )
    raise StoreError(msg)


def _instantiate(
    module_path: str,
    cls_name: str,
    label: str,
    settings: StoreSettings,
) -> ObjectStore:
    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load store backend '{label}': {exc}"
        raise StoreError(msg) from exc

    _validate_class(cls, label)
    store = cls(settings)
    log.info("Loaded store backend: %s", label)
    return store


def _validate_class(cls: type, label: str) -> None:
    """Verify that a backend class implements the store interface."""
    if not (isinstance(cls, type) and issubclass(cls, ObjectStore)):
        msg = f"Store backend '{label}' is not a subclass of ObjectStore"
        raise StoreError(msg)

    for method_name in _REQUIRED_METHODS:
        method = getattr(cls, method_name, None)
        if method is None or getattr(method, "__isabstractmethod__", False):
            msg = f"Store backend '{label}' does not implement '{method_name}()'"
            raise StoreError(msg)
