"""Kubernetes API implementation of :class:`ObjectStore`.

Uses the official ``kubernetes`` client:

- ``CustomObjectsApi`` for ``Certificate`` objects and their status
  sub-resource,
- ``CoreV1Api`` for secrets,
- ``AppsV1Api`` for Deployments.

Typed client models are converted to plain camelCase dicts with
``ApiClient.sanitize_for_serialization`` so the entity classes only ever
deal with the wire shape.  ``ApiException`` is mapped onto the store
error hierarchy (404 → :class:`NotFoundError`, 409 →
:class:`ConflictError`).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from certkeeper.core.types import API_GROUP, API_VERSION, CERTIFICATE_PLURAL
from certkeeper.logging.sanitize import sanitize_for_logs
from certkeeper.models.certificate import CertificateResource
from certkeeper.models.secret import Secret
from certkeeper.models.workload import Workload
from certkeeper.store.base import ConflictError, NotFoundError, ObjectStore, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from certkeeper.config.settings import StoreSettings

log = logging.getLogger(__name__)

_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409


def _translate(exc: ApiException, what: str) -> StoreError:
    detail = f"{what}: {exc.status} {exc.reason}"
    if exc.status == _HTTP_NOT_FOUND:
        return NotFoundError(detail, status=exc.status)
    if exc.status == _HTTP_CONFLICT:
        return ConflictError(detail, status=exc.status)
    return StoreError(detail, status=exc.status)


def load_client_configuration(settings: StoreSettings) -> None:
    """Load cluster credentials into the global client configuration.

    ``in_cluster`` uses the pod's service account; otherwise a kubeconfig
    file (``settings.kubeconfig`` or the default location) is read.
    """
    try:
        if settings.in_cluster:
            k8s_config.load_incluster_config()
        else:
            k8s_config.load_kube_config(
                config_file=settings.kubeconfig,
                context=settings.context,
            )
    except ConfigException as exc:
        msg = f"Failed to load Kubernetes configuration: {exc}"
        raise StoreError(msg) from exc


class KubernetesStore(ObjectStore):
    """Object store backed by a live Kubernetes API server.

    Parameters
    ----------
    settings:
        The ``store`` configuration section.
    api_client:
        Pre-built ``ApiClient``.  When omitted, credentials are loaded
        from *settings* on first use.

    """

    def __init__(
        self,
        settings: StoreSettings,
        api_client: k8s_client.ApiClient | None = None,
    ) -> None:
        self._settings = settings
        self._api_client = api_client
        self._custom: k8s_client.CustomObjectsApi | None = None
        self._core: k8s_client.CoreV1Api | None = None
        self._apps: k8s_client.AppsV1Api | None = None

    # -- client plumbing ------------------------------------------------------

    def _ensure_client(self) -> k8s_client.ApiClient:
        if self._api_client is None:
            load_client_configuration(self._settings)
            self._api_client = k8s_client.ApiClient()
        return self._api_client

    @property
    def custom(self) -> k8s_client.CustomObjectsApi:
        if self._custom is None:
            self._custom = k8s_client.CustomObjectsApi(self._ensure_client())
        return self._custom

    @property
    def core(self) -> k8s_client.CoreV1Api:
        if self._core is None:
            self._core = k8s_client.CoreV1Api(self._ensure_client())
        return self._core

    @property
    def apps(self) -> k8s_client.AppsV1Api:
        if self._apps is None:
            self._apps = k8s_client.AppsV1Api(self._ensure_client())
        return self._apps

    def _to_dict(self, obj: Any) -> dict:  # noqa: ANN401
        if isinstance(obj, dict):
            return obj
        return self._ensure_client().sanitize_for_serialization(obj)

    def _call(self, what: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
        kwargs.setdefault("_request_timeout", self._settings.request_timeout_seconds)
        if "body" in kwargs and log.isEnabledFor(logging.DEBUG):
            log.debug("%s: %s", what, sanitize_for_logs(kwargs["body"]))
        try:
            return func(*args, **kwargs)
        except ApiException as exc:
            raise _translate(exc, what) from exc

    def _crd_args(self, namespace: str) -> dict:
        return {
            "group": API_GROUP,
            "version": API_VERSION,
            "namespace": namespace,
            "plural": CERTIFICATE_PLURAL,
        }

    def startup_check(self) -> None:
        """Verify the API server answers."""
        info = self._call(
            "get server version",
            k8s_client.VersionApi(self._ensure_client()).get_code,
        )
        log.info("Connected to Kubernetes API server %s", getattr(info, "git_version", "?"))

    # -- certificates ---------------------------------------------------------

    def get_certificate(self, namespace: str, name: str) -> CertificateResource:
        obj = self._call(
            f"get certificate {namespace}/{name}",
            self.custom.get_namespaced_custom_object,
            name=name,
            **self._crd_args(namespace),
        )
        return CertificateResource.from_dict(obj)

    def update_certificate(self, cert: CertificateResource) -> CertificateResource:
        obj = self._call(
            f"update certificate {cert.key}",
            self.custom.replace_namespaced_custom_object,
            name=cert.name,
            body=cert.to_dict(),
            **self._crd_args(cert.namespace),
        )
        return CertificateResource.from_dict(obj)

    def update_certificate_status(self, cert: CertificateResource) -> CertificateResource:
        obj = self._call(
            f"update certificate status {cert.key}",
            self.custom.replace_namespaced_custom_object_status,
            name=cert.name,
            body=cert.to_dict(),
            **self._crd_args(cert.namespace),
        )
        return CertificateResource.from_dict(obj)

    # -- secrets --------------------------------------------------------------

    def get_secret(self, namespace: str, name: str) -> Secret:
        obj = self._call(
            f"get secret {namespace}/{name}",
            self.core.read_namespaced_secret,
            name=name,
            namespace=namespace,
        )
        return Secret.from_dict(self._to_dict(obj))

    def create_secret(self, secret: Secret) -> Secret:
        obj = self._call(
            f"create secret {secret.namespace}/{secret.name}",
            self.core.create_namespaced_secret,
            namespace=secret.namespace,
            body=secret.to_dict(),
        )
        return Secret.from_dict(self._to_dict(obj))

    def update_secret(self, secret: Secret) -> Secret:
        obj = self._call(
            f"update secret {secret.namespace}/{secret.name}",
            self.core.replace_namespaced_secret,
            name=secret.name,
            namespace=secret.namespace,
            body=secret.to_dict(),
        )
        return Secret.from_dict(self._to_dict(obj))

    # -- workloads ------------------------------------------------------------

    def list_workloads(self, namespace: str) -> list[Workload]:
        result = self._call(
            f"list deployments in {namespace}",
            self.apps.list_namespaced_deployment,
            namespace=namespace,
        )
        workloads = []
        for item in result.items or []:
            data = self._to_dict(item)
            data.setdefault("kind", "Deployment")
            workloads.append(Workload.from_dict(data))
        return workloads

    def update_workload(self, workload: Workload) -> Workload:
        obj = self._call(
            f"update deployment {workload.key}",
            self.apps.replace_namespaced_deployment,
            name=workload.name,
            namespace=workload.namespace,
            body=workload.to_dict(),
        )
        return Workload.from_dict(self._to_dict(obj))
