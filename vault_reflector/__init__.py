"""Reflect HashiCorp Vault secrets into Kubernetes secrets."""

__version__ = "0.1.0"
