"""Certificate custom resource: desired state, observed state, metadata.

All entities are frozen dataclasses.  Mutations (finalizers, status
conditions, a new issuance) return a new instance so a status is only
ever replaced as a whole.

The ``from_dict`` / ``to_dict`` pairs translate to and from the
camelCase object shape served by the Kubernetes API.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from certkeeper.core.types import (
    API_GROUP,
    API_VERSION,
    CERTIFICATE_KIND,
    FINALIZER,
    ConditionStatus,
    ConditionType,
    IssuerKind,
    LifecycleState,
)
from certkeeper.core.timestamps import format_rfc3339, parse_rfc3339

# ---------------------------------------------------------------------------
# Desired state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuerRef:
    """Reference to the issuer that signs the certificate.

    ``kind`` keeps the raw string from the resource; :meth:`resolve_kind`
    turns it into an :class:`IssuerKind` and fails on unknown values.
    """

    name: str = ""
    kind: str = IssuerKind.SELF_SIGNED.value

    def resolve_kind(self) -> IssuerKind:
        return IssuerKind.parse(self.kind)

    @classmethod
    def from_dict(cls, data: dict | None) -> IssuerRef:
        d = data or {}
        return cls(
            name=d.get("name", ""),
            kind=d.get("kind") or IssuerKind.SELF_SIGNED.value,
        )

    def to_dict(self) -> dict:
        return {"name": self.name, "kind": self.kind}


@dataclass(frozen=True)
class CertificateSpec:
    """Desired state of a certificate, as declared by its author."""

    common_name: str
    secret_name: str
    dns_names: tuple[str, ...] = ()
    ip_addresses: tuple[str, ...] = ()
    duration: str = "2160h"
    renew_before: str = "720h"
    issuer_ref: IssuerRef = field(default_factory=IssuerRef)
    restart_deployments: bool = False

    @classmethod
    def from_dict(cls, data: dict | None) -> CertificateSpec:
        d = data or {}
        return cls(
            common_name=d.get("commonName", ""),
            secret_name=d.get("secretName", ""),
            dns_names=tuple(d.get("dnsNames") or ()),
            ip_addresses=tuple(d.get("ipAddresses") or ()),
            duration=d.get("duration") or "2160h",
            renew_before=d.get("renewBefore") or "720h",
            issuer_ref=IssuerRef.from_dict(d.get("issuerRef")),
            restart_deployments=bool(d.get("restartDeployments", False)),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "commonName": self.common_name,
            "secretName": self.secret_name,
            "duration": self.duration,
            "renewBefore": self.renew_before,
            "issuerRef": self.issuer_ref.to_dict(),
        }
        if self.dns_names:
            out["dnsNames"] = list(self.dns_names)
        if self.ip_addresses:
            out["ipAddresses"] = list(self.ip_addresses)
        if self.restart_deployments:
            out["restartDeployments"] = True
        return out


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Condition:
    type: str
    status: ConditionStatus
    reason: str
    message: str
    last_transition_time: datetime | None
    observed_generation: int | None = None

    @property
    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE

    @classmethod
    def from_dict(cls, data: dict) -> Condition:
        return cls(
            type=data["type"],
            status=ConditionStatus(data.get("status", ConditionStatus.UNKNOWN)),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=parse_rfc3339(data.get("lastTransitionTime")),
            observed_generation=data.get("observedGeneration"),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "type": self.type,
            "status": self.status.value,
            "reason": self.reason,
            "message": self.message,
        }
        if self.last_transition_time is not None:
            out["lastTransitionTime"] = format_rfc3339(self.last_transition_time)
        if self.observed_generation is not None:
            out["observedGeneration"] = self.observed_generation
        return out


class Conditions:
    """Ordered, immutable mapping of condition type to :class:`Condition`.

    :meth:`upsert` replaces an existing entry in place (keeping its
    position) or appends a new one, and returns a new mapping.  As with
    ``meta.SetStatusCondition`` the transition time is only moved when
    the status actually changes.
    """

    __slots__ = ("_items",)

    def __init__(self, conditions: Iterable[Condition] = ()) -> None:
        items: dict[str, Condition] = {}
        for cond in conditions:
            items[cond.type] = cond
        self._items = items

    def upsert(self, condition: Condition) -> Conditions:
        existing = self._items.get(condition.type)
        if existing is not None and existing.status == condition.status:
            condition = replace(
                condition,
                last_transition_time=existing.last_transition_time,
            )
        items = dict(self._items)
        items[condition.type] = condition
        return Conditions(items.values())

    def get(self, condition_type: str | ConditionType) -> Condition | None:
        return self._items.get(str(condition_type))

    def is_true(self, condition_type: str | ConditionType) -> bool:
        cond = self.get(condition_type)
        return cond is not None and cond.is_true

    def __contains__(self, condition_type: object) -> bool:
        return str(condition_type) in self._items

    def __iter__(self) -> Iterator[Condition]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conditions):
            return NotImplemented
        return list(self._items.items()) == list(other._items.items())

    def __hash__(self) -> int:
        return hash(tuple(self._items.items()))

    def __repr__(self) -> str:
        return f"Conditions({list(self._items.values())!r})"

    @classmethod
    def from_list(cls, data: list[dict] | None) -> Conditions:
        return cls(Condition.from_dict(c) for c in data or ())

    def to_list(self) -> list[dict]:
        return [c.to_dict() for c in self._items.values()]


# ---------------------------------------------------------------------------
# Observed state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertificateStatus:
    """Observed state written by the reconciler.

    The issuance fields (``not_before`` through ``last_renewal_time``)
    describe one issuance and are only replaced together through
    :meth:`with_issuance`.
    """

    conditions: Conditions = field(default_factory=Conditions)
    not_before: datetime | None = None
    not_after: datetime | None = None
    renewal_time: datetime | None = None
    serial_number: str = ""
    last_renewal_time: datetime | None = None

    def with_condition(self, condition: Condition) -> CertificateStatus:
        return replace(self, conditions=self.conditions.upsert(condition))

    def with_issuance(
        self,
        *,
        not_before: datetime,
        not_after: datetime,
        renewal_time: datetime,
        serial_number: str,
        last_renewal_time: datetime,
    ) -> CertificateStatus:
        """Return a status describing a single new issuance.

        Raises
        ------
        ValueError
            If ``renewal_time`` is not strictly before ``not_after``.

        """
        if renewal_time >= not_after:
            msg = (
                f"renewal time {format_rfc3339(renewal_time)} must be before "
                f"notAfter {format_rfc3339(not_after)}"
            )
            raise ValueError(msg)
        return replace(
            self,
            not_before=not_before,
            not_after=not_after,
            renewal_time=renewal_time,
            serial_number=serial_number,
            last_renewal_time=last_renewal_time,
        )

    @classmethod
    def from_dict(cls, data: dict | None) -> CertificateStatus:
        d = data or {}
        return cls(
            conditions=Conditions.from_list(d.get("conditions")),
            not_before=parse_rfc3339(d.get("notBefore")),
            not_after=parse_rfc3339(d.get("notAfter")),
            renewal_time=parse_rfc3339(d.get("renewalTime")),
            serial_number=d.get("serialNumber", ""),
            last_renewal_time=parse_rfc3339(d.get("lastRenewalTime")),
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        if len(self.conditions):
            out["conditions"] = self.conditions.to_list()
        for key, value in (
            ("notBefore", self.not_before),
            ("notAfter", self.not_after),
            ("renewalTime", self.renewal_time),
        ):
            if value is not None:
                out[key] = format_rfc3339(value)
        if self.serial_number:
            out["serialNumber"] = self.serial_number
        if self.last_renewal_time is not None:
            out["lastRenewalTime"] = format_rfc3339(self.last_renewal_time)
        return out


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertificateResource:
    name: str
    namespace: str
    spec: CertificateSpec
    status: CertificateStatus = field(default_factory=CertificateStatus)
    uid: str = ""
    generation: int | None = None
    resource_version: str | None = None
    finalizers: tuple[str, ...] = ()
    deletion_timestamp: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict, compare=False)
    annotations: dict[str, str] = field(default_factory=dict, compare=False)
    # Original API object; unknown fields are carried through to_dict().
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def lifecycle_state(self) -> LifecycleState:
        if self.is_deleting:
            return LifecycleState.DELETING
        if FINALIZER not in self.finalizers:
            return LifecycleState.INITIALIZING
        return LifecycleState.ACTIVE

    # -- finalizers (set semantics) -------------------------------------------

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def with_finalizer(self, finalizer: str) -> CertificateResource:
        if finalizer in self.finalizers:
            return self
        return replace(self, finalizers=(*self.finalizers, finalizer))

    def without_finalizer(self, finalizer: str) -> CertificateResource:
        if finalizer not in self.finalizers:
            return self
        return replace(
            self,
            finalizers=tuple(f for f in self.finalizers if f != finalizer),
        )

    def with_status(self, status: CertificateStatus) -> CertificateResource:
        return replace(self, status=status)

    def owner_reference(self) -> dict:
        """Controller owner reference pointing at this certificate."""
        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": CERTIFICATE_KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    # -- serialisation --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict) -> CertificateResource:
        meta = data.get("metadata") or {}
        return cls(
            name=meta["name"],
            namespace=meta.get("namespace", "default"),
            spec=CertificateSpec.from_dict(data.get("spec")),
            status=CertificateStatus.from_dict(data.get("status")),
            uid=meta.get("uid", ""),
            generation=meta.get("generation"),
            resource_version=meta.get("resourceVersion"),
            finalizers=tuple(meta.get("finalizers") or ()),
            deletion_timestamp=parse_rfc3339(meta.get("deletionTimestamp")),
            labels=dict(meta.get("labels") or {}),
            annotations=dict(meta.get("annotations") or {}),
            raw=copy.deepcopy(data),
        )

    def to_dict(self) -> dict:
        body = copy.deepcopy(self.raw)
        body["apiVersion"] = f"{API_GROUP}/{API_VERSION}"
        body["kind"] = CERTIFICATE_KIND
        meta = body.setdefault("metadata", {})
        meta["name"] = self.name
        meta["namespace"] = self.namespace
        if self.uid:
            meta["uid"] = self.uid
        if self.generation is not None:
            meta["generation"] = self.generation
        if self.resource_version is not None:
            meta["resourceVersion"] = self.resource_version
        else:
            meta.pop("resourceVersion", None)
        if self.finalizers:
            meta["finalizers"] = list(self.finalizers)
        else:
            meta.pop("finalizers", None)
        if self.deletion_timestamp is not None:
            meta["deletionTimestamp"] = format_rfc3339(self.deletion_timestamp)
        if self.labels:
            meta["labels"] = dict(self.labels)
        if self.annotations:
            meta["annotations"] = dict(self.annotations)
        # Unknown spec fields in raw survive; known ones are overwritten.
        spec = body.get("spec") or {}
        spec.update(self.spec.to_dict())
        body["spec"] = spec
        body["status"] = self.status.to_dict()
        return body
