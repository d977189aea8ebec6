"""Workflow for reflecting Vault secrets into Kubernetes secrets."""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..domains.errors import FetchError, MappingError, OwnershipConflict, ReflectionError
from ..domains.k8s_client import ClusterSecretClient, build_secret
from ..domains.models import DEFAULT_LABEL, LABEL_KEY, SecretMapping
from ..domains.vault_client import VaultSecretClient

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_FAILED = "failed"


@dataclass
class MappingOutcome:
    """Result of reflecting a single mapping."""
    mapping: SecretMapping
    action: str
    error: Optional[MappingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ReflectionResult:
    """Aggregate result of one reflection run."""
    outcomes: List[MappingOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[MappingError]:
        return [o.error for o in self.outcomes if o.error is not None]

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise ReflectionError carrying every mapping failure, if any."""
        if not self.succeeded:
            raise ReflectionError(self.failures)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    return json.dumps(value).encode("utf-8")


def project(fields: Mapping[str, Any], keys: Optional[Mapping[str, str]], path: str = "") -> Dict[str, bytes]:
    """
    Build the target key/value set from fetched secret fields.

    Args:
        fields: Secret fields read from Vault
        keys: ``{target_key: source_field}``, or None to copy every field
        path: Source path, for error messages

    Raises:
        FetchError: If ``keys`` references a field the secret does not have
    """
    if keys is None:
        return {name: _to_bytes(value) for name, value in fields.items()}

    projected = {}
    for target_key, source_field in keys.items():
        if source_field not in fields:
            raise FetchError(f"field '{source_field}' not found in secret at {path}")
        projected[target_key] = _to_bytes(fields[source_field])
    return projected


class Reflector:
    """Copies Vault secrets into Kubernetes secrets it owns."""

    def __init__(self, store: VaultSecretClient, cluster: ClusterSecretClient, label: str = DEFAULT_LABEL):
        self.store = store
        self.cluster = cluster
        self.label = label

    @property
    def labels(self) -> Dict[str, str]:
        return {LABEL_KEY: self.label}

    def owns(self, secret) -> bool:
        labels = (secret.metadata.labels if secret.metadata else None) or {}
        return labels.get(LABEL_KEY) == self.label

    def reflect_one(self, mapping: SecretMapping) -> str:
        """
        Reflect a single mapping.

        Returns:
            ACTION_CREATED or ACTION_UPDATED

        Raises:
            MappingError: FetchError, OwnershipConflict or WriteError
        """
        fields = self.store.fetch(mapping.vault_path, mapping.engine_type)
        data = project(fields, mapping.keys, mapping.vault_path)

        secret = build_secret(
            mapping.secret_name,
            mapping.namespace,
            data,
            self.labels,
            mapping.secret_type,
        )

        existing = self.cluster.get(mapping.secret_name, mapping.namespace)
        if existing is None:
            self.cluster.create(secret)
            return ACTION_CREATED

        if not self.owns(existing):
            raise OwnershipConflict(
                f"secret {mapping.target} exists and is not labelled {LABEL_KEY}={self.label}, refusing to overwrite"
            )

        self.cluster.update(secret)
        return ACTION_UPDATED

    def reflect(self, mappings: Sequence[SecretMapping]) -> ReflectionResult:
        """
        Reflect every mapping in order. Failures are isolated per mapping.

        Returns:
            ReflectionResult with one outcome per mapping
        """
        result = ReflectionResult()
        for mapping in mappings:
            try:
                action = self.reflect_one(mapping)
            except MappingError as e:
                logger.error(f"Failed to reflect {mapping.vault_path} into {mapping.target}: {e}")
                result.outcomes.append(MappingOutcome(mapping, ACTION_FAILED, e))
                continue

            logger.info(f"Reflected {mapping.vault_path} into {mapping.target} ({action})")
            result.outcomes.append(MappingOutcome(mapping, action))

        if not result.succeeded:
            logger.warning(f"{len(result.failures)} of {len(mappings)} mapping(s) failed")
        return result
