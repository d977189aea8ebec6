"""Vault to Kubernetes secret synchronisation."""
