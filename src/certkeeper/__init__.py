"""certkeeper: a reconciliation loop for self-signed TLS certificates."""

__version__ = "0.3.0"
