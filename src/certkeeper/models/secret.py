"""Secret entity holding the issued certificate and key."""

from __future__ import annotations

import base64
import copy
from dataclasses import dataclass, field

from certkeeper.core.types import TLS_SECRET_TYPE


@dataclass(frozen=True)
class Secret:
    name: str
    namespace: str
    data: dict[str, bytes] = field(default_factory=dict)
    type: str = TLS_SECRET_TYPE
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: tuple[dict, ...] = ()
    resource_version: str | None = None
    uid: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    def has_owner(self, uid: str) -> bool:
        return any(ref.get("uid") == uid for ref in self.owner_references)

    @classmethod
    def from_dict(cls, data: dict) -> Secret:
        meta = data.get("metadata") or {}
        payload = {
            key: base64.b64decode(value) for key, value in (data.get("data") or {}).items()
        }
        # stringData is write-only on a real API server; honour it anyway.
        for key, value in (data.get("stringData") or {}).items():
            payload[key] = value.encode("utf-8")
        return cls(
            name=meta["name"],
            namespace=meta.get("namespace", "default"),
            data=payload,
            type=data.get("type") or "Opaque",
            labels=dict(meta.get("labels") or {}),
            annotations=dict(meta.get("annotations") or {}),
            owner_references=tuple(meta.get("ownerReferences") or ()),
            resource_version=meta.get("resourceVersion"),
            uid=meta.get("uid", ""),
            raw=copy.deepcopy(data),
        )

    def to_dict(self) -> dict:
        body = copy.deepcopy(self.raw)
        body.pop("stringData", None)
        body["apiVersion"] = "v1"
        body["kind"] = "Secret"
        body["type"] = self.type
        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["namespace"] = self.namespace
        meta["labels"] = dict(self.labels)
        if self.annotations:
            meta["annotations"] = dict(self.annotations)
        if self.owner_references:
            meta["ownerReferences"] = [dict(ref) for ref in self.owner_references]
        if self.resource_version is not None:
            meta["resourceVersion"] = self.resource_version
        else:
            meta.pop("resourceVersion", None)
        body["data"] = {
            key: base64.b64encode(value).decode("ascii") for key, value in self.data.items()
        }
        return body
