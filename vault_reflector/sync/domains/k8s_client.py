"""Kubernetes secret client wrapper."""
import base64
import logging
from typing import Dict, Optional

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from .errors import ClientSetupError, WriteError

logger = logging.getLogger(__name__)


def build_secret(
    name: str,
    namespace: str,
    data: Dict[str, bytes],
    labels: Dict[str, str],
    secret_type: str = "Opaque",
) -> client.V1Secret:
    """Construct a V1Secret from raw byte values."""
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=dict(labels),
        ),
        type=secret_type,
        data={k: base64.b64encode(v).decode("ascii") for k, v in data.items()},
    )


class ClusterSecretClient:
    """Wrapper around CoreV1Api keyed by secret name and namespace."""

    def __init__(self, api: Optional[client.CoreV1Api] = None):
        self._api = api

    @classmethod
    def from_environment(cls) -> "ClusterSecretClient":
        """
        Load in-cluster configuration, falling back to the local kubeconfig.

        Raises:
            ClientSetupError: If neither configuration source is usable
        """
        try:
            k8s_config.load_incluster_config()
            logger.debug("Using in-cluster kubernetes configuration")
        except k8s_config.ConfigException:
            try:
                k8s_config.load_kube_config()
                logger.debug("Using kubeconfig kubernetes configuration")
            except (k8s_config.ConfigException, OSError) as e:
                raise ClientSetupError("kubernetes", str(e))
        return cls(client.CoreV1Api())

    @property
    def api(self) -> client.CoreV1Api:
        """Lazy-initialize client."""
        if self._api is None:
            self._api = client.CoreV1Api()
        return self._api

    def get(self, name: str, namespace: str) -> Optional[client.V1Secret]:
        """
        Read a secret, returning None if it does not exist.

        Raises:
            WriteError: On any API failure other than not-found
        """
        try:
            return self.api.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise WriteError(f"error reading secret {namespace}/{name}: {e.status} {e.reason}")
        except HTTPError as e:
            raise WriteError(f"error reading secret {namespace}/{name}: {e}")

    def create(self, secret: client.V1Secret) -> None:
        meta = secret.metadata
        try:
            self.api.create_namespaced_secret(namespace=meta.namespace, body=secret)
        except ApiException as e:
            raise WriteError(f"error creating secret {meta.namespace}/{meta.name}: {e.status} {e.reason}")
        except HTTPError as e:
            raise WriteError(f"error creating secret {meta.namespace}/{meta.name}: {e}")

    def update(self, secret: client.V1Secret) -> None:
        meta = secret.metadata
        try:
            self.api.replace_namespaced_secret(name=meta.name, namespace=meta.namespace, body=secret)
        except ApiException as e:
            raise WriteError(f"error updating secret {meta.namespace}/{meta.name}: {e.status} {e.reason}")
        except HTTPError as e:
            raise WriteError(f"error updating secret {meta.namespace}/{meta.name}: {e}")
