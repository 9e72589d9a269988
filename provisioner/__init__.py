"""Provisioner — idempotent, ordered provisioning-step runner."""

__version__ = "0.1.0"
