"""Certificate generation.

Exports the abstract base class, the result dataclass, the built-in
self-signed issuer and the registry loader.
"""

from certkeeper.issuer.base import IssuedCertificate, Issuer
from certkeeper.issuer.registry import UnsupportedIssuer, load_issuer
from certkeeper.issuer.self_signed import SelfSignedIssuer

__all__ = [
    "IssuedCertificate",
    "Issuer",
    "SelfSignedIssuer",
    "UnsupportedIssuer",
    "load_issuer",
]
