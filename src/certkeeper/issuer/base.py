"""Abstract base class for certificate issuers.

An issuer turns a :class:`CertificateSpec` into fresh key material and a
signed certificate.  Every call generates a new key pair and a new
serial number; issuers never reuse prior key material.

The ``generate`` method returns an :class:`IssuedCertificate` or raises
:class:`~certkeeper.core.errors.GenerationError`.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.config.settings import IssuerSettings
    from certkeeper.core.types import IssuerKind
    from certkeeper.models.certificate import CertificateSpec

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedCertificate:
    """Result of a successful issuance.

    Attributes
    ----------
    certificate_pem:
        PEM-encoded leaf certificate.
    private_key_pem:
        PEM-encoded private key matching the certificate.
    not_before:
        Certificate validity start time.
    not_after:
        Certificate validity end time.
    serial_number:
        Lowercase hex serial number.
    fingerprint:
        SHA-256 hex digest of the certificate's DER encoding.

    """

    certificate_pem: bytes
    private_key_pem: bytes
    not_before: datetime
    not_after: datetime
    serial_number: str
    fingerprint: str


class Issuer(abc.ABC):
    """Base class for all issuer implementations.

    Parameters
    ----------
    settings:
        The ``issuer`` configuration section.

    """

    kind: IssuerKind

    def __init__(self, settings: IssuerSettings) -> None:
        self._settings = settings

    @abc.abstractmethod
    def generate(
        self,
        spec: CertificateSpec,
        *,
        now: datetime | None = None,
    ) -> IssuedCertificate:
        """Issue a certificate for *spec*, valid from *now* (default: current time).

        Raises
        ------
        GenerationError
            On any key or certificate creation failure, including an
            unparsable ``spec.duration``.

        """
