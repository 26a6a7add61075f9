"""Event delivery: runs the reconciler under the kopf operator framework."""

from certkeeper.runtime.kopf_app import build_registry, run_certificate_daemon, run_operator

__all__ = ["build_registry", "run_certificate_daemon", "run_operator"]
