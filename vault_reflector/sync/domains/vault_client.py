"""HashiCorp Vault client wrapper."""
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import hvac
import requests
from hvac.exceptions import VaultError

from .errors import ClientSetupError, ExchangeError, FetchError
from .models import ENGINE_KV, ENGINE_KV_V2, TLSConfig, VaultConfig

logger = logging.getLogger(__name__)


class VaultSecretClient:
    """Wrapper around hvac.Client exposing only what reflection needs."""

    def __init__(self, url: str, tls: Optional[TLSConfig] = None):
        self.url = url
        self.tls = tls
        self._client = None

    @classmethod
    def from_config(cls, vault_config: VaultConfig) -> "VaultSecretClient":
        """
        Build a client from configuration and eagerly construct the hvac client.

        Raises:
            ClientSetupError: If the URL or TLS settings are unusable
        """
        parsed = urlparse(vault_config.url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ClientSetupError("vault", f"invalid vault url: {vault_config.url}")

        client = cls(vault_config.url, vault_config.tls)
        try:
            _ = client.client
        except (VaultError, ValueError, OSError) as e:
            raise ClientSetupError("vault", str(e))
        return client

    @property
    def client(self) -> hvac.Client:
        """Lazy-initialize client."""
        if self._client is None:
            kwargs: Dict[str, Any] = {"url": self.url}
            if self.tls is not None:
                if self.tls.insecure:
                    kwargs["verify"] = False
                elif self.tls.ca_cert:
                    kwargs["verify"] = self.tls.ca_cert
                if self.tls.client_cert and self.tls.client_key:
                    kwargs["cert"] = (self.tls.client_cert, self.tls.client_key)
            self._client = hvac.Client(**kwargs)
        return self._client

    @property
    def host(self) -> str:
        """Hostname of the Vault server, without scheme or port."""
        return urlparse(self.url).hostname or ""

    @property
    def token(self) -> Optional[str]:
        return self.client.token

    def set_token(self, token: str) -> None:
        self.client.token = token

    def fetch(self, path: str, engine_type: str = ENGINE_KV_V2) -> Dict[str, Any]:
        """
        Read the secret fields stored at ``path``.

        For kv-v2 the path must include the ``data/`` segment
        (e.g. ``secret/data/db``) and the versioned envelope is unwrapped.

        Raises:
            FetchError: On a missing path, permission error or transport error
        """
        try:
            response = self.client.read(path)
        except (VaultError, requests.exceptions.RequestException) as e:
            raise FetchError(f"error reading {path} from vault: {e}")

        if not response or response.get("data") is None:
            raise FetchError(f"no secret found at {path}")

        data = response["data"]
        if engine_type == ENGINE_KV_V2:
            data = data.get("data")
            if data is None:
                # deleted or destroyed latest version
                raise FetchError(f"no current version of secret at {path}")
        elif engine_type != ENGINE_KV:
            raise FetchError(f"unsupported engine type {engine_type} for {path}")

        if not isinstance(data, dict):
            raise FetchError(f"unexpected secret format at {path}")
        return data

    def exchange(self, endpoint: str, payload: Dict[str, Any]) -> str:
        """
        Write ``payload`` to a login endpoint and return the issued client token.

        Raises:
            ExchangeError: If Vault rejects the login or returns no token
        """
        try:
            response = self.client.write_data(endpoint, data=payload)
        except (VaultError, requests.exceptions.RequestException) as e:
            raise ExchangeError(f"vault rejected login at {endpoint}: {e}")

        auth = (response or {}).get("auth") or {}
        token = auth.get("client_token")
        if not token:
            raise ExchangeError(f"vault returned no client token from {endpoint}")

        logger.debug(f"Obtained vault token from {endpoint}, ttl={auth.get('lease_duration')}s")
        return token
