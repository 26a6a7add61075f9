"""Workload entity: a Deployment whose pods may consume a secret."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Workload:
    name: str
    namespace: str
    pod_spec: dict = field(default_factory=dict, compare=False)
    template_annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None
    kind: str = "Deployment"
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def with_template_annotation(self, key: str, value: str) -> Workload:
        annotations = dict(self.template_annotations)
        annotations[key] = value
        return Workload(
            name=self.name,
            namespace=self.namespace,
            pod_spec=self.pod_spec,
            template_annotations=annotations,
            resource_version=self.resource_version,
            kind=self.kind,
            raw=self.raw,
        )

    @classmethod
    def from_dict(cls, data: dict) -> Workload:
        meta = data.get("metadata") or {}
        template = (data.get("spec") or {}).get("template") or {}
        template_meta = template.get("metadata") or {}
        return cls(
            name=meta["name"],
            namespace=meta.get("namespace", "default"),
            pod_spec=copy.deepcopy(template.get("spec") or {}),
            template_annotations=dict(template_meta.get("annotations") or {}),
            resource_version=meta.get("resourceVersion"),
            kind=data.get("kind") or "Deployment",
            raw=copy.deepcopy(data),
        )

    def to_dict(self) -> dict:
        body = copy.deepcopy(self.raw)
        body.setdefault("apiVersion", "apps/v1")
        body["kind"] = self.kind
        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["namespace"] = self.namespace
        if self.resource_version is not None:
            meta["resourceVersion"] = self.resource_version
        template = body.setdefault("spec", {}).setdefault("template", {})
        template_meta = template.setdefault("metadata", {})
        if self.template_annotations:
            template_meta["annotations"] = dict(self.template_annotations)
        template["spec"] = copy.deepcopy(self.pod_spec)
        return body
