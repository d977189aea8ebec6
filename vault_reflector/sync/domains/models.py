"""Domain models for secret reflection."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

AUTH_TYPE_TOKEN = "token"
AUTH_TYPE_GCP = "gcp-default"
AUTH_TYPE_KUBERNETES = "kubernetes"

ENGINE_KV = "kv"
ENGINE_KV_V2 = "kv-v2"
ENGINE_TYPES = (ENGINE_KV, ENGINE_KV_V2)

DEFAULT_GCP_AUTH_PATH = "auth/gcp"
DEFAULT_KUBERNETES_AUTH_PATH = "auth/kubernetes"
DEFAULT_SERVICE_ACCOUNT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"

# Label key stamped on every secret we write; the value is the configured label.
LABEL_KEY = "vault-reflector"
DEFAULT_LABEL = "default"


@dataclass(frozen=True)
class StaticTokenAuth:
    """Use a pre-issued Vault token as-is."""
    token: str


@dataclass(frozen=True)
class GCPAuth:
    """Exchange a GCE instance identity token for a Vault token."""
    role: Optional[str] = None
    audience: Optional[str] = None
    auth_path: str = DEFAULT_GCP_AUTH_PATH


@dataclass(frozen=True)
class KubernetesAuth:
    """Exchange the pod's service account token for a Vault token."""
    role: Optional[str] = None
    auth_path: str = DEFAULT_KUBERNETES_AUTH_PATH
    token_path: str = DEFAULT_SERVICE_ACCOUNT_TOKEN_PATH


TrustConfig = Union[StaticTokenAuth, GCPAuth, KubernetesAuth]


@dataclass(frozen=True)
class Credential:
    """An opaque Vault bearer token. Expiry is tracked by Vault, not here."""
    token: str

    def __repr__(self) -> str:
        return "Credential(token=<redacted>)"


@dataclass(frozen=True)
class TLSConfig:
    ca_cert: Optional[str] = None
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    insecure: bool = False


@dataclass(frozen=True)
class VaultConfig:
    url: str
    auth: TrustConfig
    default_engine_type: str = ENGINE_KV_V2
    tls: Optional[TLSConfig] = None


@dataclass(frozen=True)
class SecretMapping:
    """One Vault path reflected into one Kubernetes secret.

    ``keys`` maps target secret keys to source field names. ``None`` copies
    every field of the source secret under its own name.
    """
    vault_path: str
    secret_name: str
    namespace: str
    engine_type: str = ENGINE_KV_V2
    secret_type: str = "Opaque"
    keys: Optional[Dict[str, str]] = None

    @property
    def target(self) -> str:
        return f"{self.namespace}/{self.secret_name}"


@dataclass
class ReflectorConfig:
    vault: VaultConfig
    namespace: str = "default"
    label: str = DEFAULT_LABEL
    daemon: bool = False
    refresh_interval: float = 30.0
    listen_address: str = ":8080"
    mappings: List[SecretMapping] = field(default_factory=list)
