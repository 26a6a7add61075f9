"""Issuer registry keyed by :class:`IssuerKind`.

Only :attr:`IssuerKind.SELF_SIGNED` has an implementation.  ``CA`` and
``External`` resolve to :class:`UnsupportedIssuer`, which fails every
issuance with a :class:`GenerationError` naming the kind.

Usage::

    from certkeeper.issuer.registry import load_issuer

    issuer = load_issuer(cert.spec.issuer_ref, settings.issuer)
    issued = issuer.generate(cert.spec)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from certkeeper.core.errors import GenerationError
from certkeeper.core.types import IssuerKind
from certkeeper.issuer.base import IssuedCertificate, Issuer
from certkeeper.issuer.self_signed import SelfSignedIssuer

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.config.settings import IssuerSettings
    from certkeeper.models.certificate import CertificateSpec, IssuerRef

log = logging.getLogger(__name__)


class UnsupportedIssuer(Issuer):
    """Placeholder for issuer kinds without an issuance algorithm."""

    def __init__(self, settings: IssuerSettings, kind: IssuerKind) -> None:
        super().__init__(settings)
        self.kind = kind

    def generate(
        self,
        spec: CertificateSpec,
        *,
        now: datetime | None = None,
    ) -> IssuedCertificate:
        msg = (
            f"issuer kind '{self.kind.value}' is not implemented; "
            f"only '{IssuerKind.SELF_SIGNED.value}' can issue certificates"
        )
        raise GenerationError(msg, retryable=False)


_ISSUERS: dict[IssuerKind, type[Issuer]] = {
    IssuerKind.SELF_SIGNED: SelfSignedIssuer,
}


def load_issuer(issuer_ref: IssuerRef, settings: IssuerSettings) -> Issuer:
    """Return the issuer for *issuer_ref*.

    Raises
    ------
    GenerationError
        If ``issuer_ref.kind`` is not a known :class:`IssuerKind`.

    """
    try:
        kind = issuer_ref.resolve_kind()
    except ValueError as exc:
        raise GenerationError(str(exc), retryable=False) from exc

    cls = _ISSUERS.get(kind)
    if cls is None:
        log.debug("No issuer implementation for kind %s", kind.value)
        return UnsupportedIssuer(settings, kind)
    return cls(settings)
