"""Shared certificate-building helpers for issuers.

Provides key-usage and extended-key-usage mappings, subject alternative
name assembly and PEM encoding.
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID

from certkeeper.core.errors import GenerationError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Key usage / EKU mappings
# ---------------------------------------------------------------------------

LEAF_KEY_USAGES = ("digital_signature", "key_encipherment")
LEAF_EXTENDED_KEY_USAGES = ("server_auth", "client_auth")

_EKU_OIDS = {
    "server_auth": ExtendedKeyUsageOID.SERVER_AUTH,
    "client_auth": ExtendedKeyUsageOID.CLIENT_AUTH,
    "code_signing": ExtendedKeyUsageOID.CODE_SIGNING,
    "email_protection": ExtendedKeyUsageOID.EMAIL_PROTECTION,
}

HASH_ALGORITHMS = {
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}


def build_key_usage(usages: tuple[str, ...]) -> x509.KeyUsage:
    """Build an :class:`x509.KeyUsage` extension from usage names."""
    usage_set = set(usages)
    return x509.KeyUsage(
        digital_signature="digital_signature" in usage_set,
        content_commitment="content_commitment" in usage_set,
        key_encipherment="key_encipherment" in usage_set,
        data_encipherment="data_encipherment" in usage_set,
        key_agreement=False,
        key_cert_sign="key_cert_sign" in usage_set,
        crl_sign="crl_sign" in usage_set,
        encipher_only=False,
        decipher_only=False,
    )


def build_eku(ekus: tuple[str, ...]) -> x509.ExtendedKeyUsage:
    """Build an :class:`x509.ExtendedKeyUsage` extension from EKU names."""
    oids = []
    for name in ekus:
        oid = _EKU_OIDS.get(name)
        if oid is None:
            msg = f"Unknown extended key usage '{name}'; supported: {sorted(_EKU_OIDS)}"
            raise GenerationError(msg, retryable=False)
        oids.append(oid)
    return x509.ExtendedKeyUsage(oids)


def hash_algorithm(name: str) -> hashes.HashAlgorithm:
    """Return the hash instance for *name*, defaulting to SHA-256."""
    return HASH_ALGORITHMS.get(name, hashes.SHA256)()


# ---------------------------------------------------------------------------
# Subject alternative names
# ---------------------------------------------------------------------------


def parse_ip_addresses(
    values: Iterable[str],
) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    """Parse IP literals, silently dropping anything that is not one."""
    parsed = []
    for value in values:
        try:
            parsed.append(ipaddress.ip_address(value.strip()))
        except ValueError:
            log.debug("Dropping unparsable IP address SAN %r", value)
    return parsed


def build_san(
    dns_names: Iterable[str],
    ip_addresses: Iterable[ipaddress.IPv4Address | ipaddress.IPv6Address],
) -> x509.SubjectAlternativeName | None:
    """Return a SAN extension, or ``None`` when there are no names."""
    general_names: list[x509.GeneralName] = [x509.DNSName(name) for name in dns_names]
    general_names.extend(x509.IPAddress(ip) for ip in ip_addresses)
    if not general_names:
        return None
    return x509.SubjectAlternativeName(general_names)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_certificate(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def encode_private_key(key: rsa.RSAPrivateKey) -> bytes:
    """PKCS#1 ``RSA PRIVATE KEY`` PEM, unencrypted."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
