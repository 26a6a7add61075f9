"""Self-signed issuer -- every certificate signs itself.

Generates a fresh RSA key per call and builds a leaf certificate whose
issuer equals its subject, with:

- CN from ``spec.common_name`` and O from ``issuer.organization``
- SAN DNS names verbatim, SAN IPs filtered to valid literals
- key usage digitalSignature + keyEncipherment (critical)
- extended key usage serverAuth + clientAuth
- basic constraints CA=false (critical)
- subject key identifier
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certkeeper.core.durations import DEFAULT_DURATION, InvalidDuration, parse_duration
from certkeeper.core.errors import GenerationError
from certkeeper.core.timestamps import truncate_to_seconds, utcnow
from certkeeper.core.types import IssuerKind
from certkeeper.issuer.base import IssuedCertificate, Issuer
from certkeeper.issuer.cert_utils import (
    LEAF_EXTENDED_KEY_USAGES,
    LEAF_KEY_USAGES,
    build_eku,
    build_key_usage,
    build_san,
    encode_certificate,
    encode_private_key,
    hash_algorithm,
    parse_ip_addresses,
)

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.models.certificate import CertificateSpec

log = logging.getLogger(__name__)

_SERIAL_BITS = 128
_PUBLIC_EXPONENT = 65537


def random_serial_number() -> int:
    """Return a serial drawn uniformly from ``[1, 2**128)``.

    Zero is redrawn because X.509 serials must be positive.
    """
    while True:
        serial = secrets.randbelow(1 << _SERIAL_BITS)
        if serial:
            return serial


def validity_for(spec: CertificateSpec) -> timedelta:
    """Return the requested validity, defaulting to 2160h when unset.

    Raises
    ------
    GenerationError
        If the duration is unparsable or not positive.

    """
    if not spec.duration:
        return DEFAULT_DURATION
    try:
        validity = parse_duration(spec.duration)
    except InvalidDuration as exc:
        msg = f"invalid duration: {exc}"
        raise GenerationError(msg, retryable=False) from exc
    if validity <= timedelta(0):
        msg = f"invalid duration: {spec.duration!r} must be positive"
        raise GenerationError(msg, retryable=False)
    return validity


class SelfSignedIssuer(Issuer):
    """Issue self-signed leaf certificates."""

    kind = IssuerKind.SELF_SIGNED

    def generate(
        self,
        spec: CertificateSpec,
        *,
        now: datetime | None = None,
    ) -> IssuedCertificate:
        """Generate a key pair and a self-signed certificate for *spec*.

        Parameters
        ----------
        spec:
            Desired state of the certificate.
        now:
            Override for the issuance instant (tests).

        Raises
        ------
        GenerationError
            On an invalid duration or any key/certificate failure.

        """
        validity = validity_for(spec)

        try:
            key = rsa.generate_private_key(
                public_exponent=_PUBLIC_EXPONENT,
                key_size=self._settings.key_size,
            )
        except Exception as exc:  # noqa: BLE001
            msg = f"failed to generate private key: {exc}"
            raise GenerationError(msg) from exc

        not_before = truncate_to_seconds(now or utcnow())
        try:
            not_after = not_before + validity
        except OverflowError as exc:
            msg = f"invalid duration: {spec.duration!r} is out of range"
            raise GenerationError(msg, retryable=False) from exc
        serial_number = random_serial_number()

        try:
            cert = self._build(spec, key, serial_number, not_before, not_after)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            msg = f"failed to create certificate: {exc}"
            raise GenerationError(msg, retryable=False) from exc

        der = cert.public_bytes(serialization.Encoding.DER)
        issued = IssuedCertificate(
            certificate_pem=encode_certificate(cert),
            private_key_pem=encode_private_key(key),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            serial_number=format(serial_number, "x"),
            fingerprint=hashlib.sha256(der).hexdigest(),
        )
        log.info(
            "Self-signed certificate issued: serial=%s, cn=%s, not_after=%s",
            issued.serial_number,
            spec.common_name,
            issued.not_after.isoformat(),
        )
        return issued

    def _build(
        self,
        spec: CertificateSpec,
        key: rsa.RSAPrivateKey,
        serial_number: int,
        not_before: datetime,
        not_after: datetime,
    ) -> x509.Certificate:
        name = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, spec.common_name),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, self._settings.organization),
            ],
        )
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(build_key_usage(LEAF_KEY_USAGES), critical=True)
            .add_extension(build_eku(LEAF_EXTENDED_KEY_USAGES), critical=False)
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
                critical=False,
            )
        )

        san = build_san(spec.dns_names, parse_ip_addresses(spec.ip_addresses))
        if san is not None:
            builder = builder.add_extension(san, critical=False)

        return builder.sign(key, hash_algorithm(self._settings.hash_algorithm))
