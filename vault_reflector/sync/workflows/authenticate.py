"""Workflow for obtaining a Vault token from the configured trust mechanism."""
import logging
from typing import Optional

from ..domains.errors import ConfigurationError, IdentityQueryError
from ..domains.identity import (
    GCPMetadataClient,
    check_token_structure,
    decode_token_payload,
    read_service_account_token,
    service_account_name,
)
from ..domains.models import Credential, GCPAuth, KubernetesAuth, StaticTokenAuth, TrustConfig
from ..domains.vault_client import VaultSecretClient

logger = logging.getLogger(__name__)


def gcp_audience(vault_host: str, role: str) -> str:
    """Audience the Vault GCP auth method expects for ``role``."""
    return f"{vault_host}/vault/{role}"


def role_from_gcp(metadata: GCPMetadataClient) -> str:
    """Use the local part of the default service account email as the role."""
    email = metadata.default_service_account_email()
    local_part, at, _ = email.partition("@")
    if not at or not local_part:
        raise IdentityQueryError(f"cannot derive a role from service account email '{email}'")
    return local_part


def role_from_service_account_token(token: str) -> str:
    """Derive the role from the service account name inside the token."""
    return service_account_name(decode_token_payload(token))


def _login_via_gcp(
    auth: GCPAuth,
    vault_client: VaultSecretClient,
    metadata: Optional[GCPMetadataClient],
) -> Credential:
    metadata = metadata or GCPMetadataClient()

    role = auth.role
    if not role:
        role = role_from_gcp(metadata)
        logger.info(f"Derived vault role '{role}' from GCP default service account")

    audience = auth.audience or gcp_audience(vault_client.host, role)
    jwt = metadata.identity_token(audience)

    token = vault_client.exchange(f"{auth.auth_path}/login", {"role": role, "jwt": jwt})
    return Credential(token=token)


def _login_via_kubernetes(auth: KubernetesAuth, vault_client: VaultSecretClient) -> Credential:
    jwt = read_service_account_token(auth.token_path)
    check_token_structure(jwt)

    role = auth.role
    if not role:
        role = role_from_service_account_token(jwt)
        logger.info(f"Derived vault role '{role}' from service account token")

    token = vault_client.exchange(f"{auth.auth_path}/login", {"role": role, "jwt": jwt})
    return Credential(token=token)


def obtain_credential(
    auth: TrustConfig,
    vault_client: VaultSecretClient,
    metadata: Optional[GCPMetadataClient] = None,
) -> Credential:
    """
    Turn a trust configuration into a Vault credential.

    Args:
        auth: One of StaticTokenAuth, GCPAuth or KubernetesAuth
        vault_client: Client used for the login exchange
        metadata: GCE metadata client (GCP auth only, created on demand)

    Returns:
        A fresh Credential

    Raises:
        AuthenticationError: If the identity cannot be resolved or Vault rejects it
        ConfigurationError: If ``auth`` is not a supported trust configuration
    """
    if isinstance(auth, StaticTokenAuth):
        if not auth.token:
            raise ConfigurationError("static vault token is empty")
        return Credential(token=auth.token)

    if isinstance(auth, GCPAuth):
        return _login_via_gcp(auth, vault_client, metadata)

    if isinstance(auth, KubernetesAuth):
        return _login_via_kubernetes(auth, vault_client)

    raise ConfigurationError(f"unsupported vault auth type: {type(auth).__name__}")


def set_vault_token(
    vault_client: VaultSecretClient,
    auth: TrustConfig,
    metadata: Optional[GCPMetadataClient] = None,
) -> Credential:
    """
    Obtain a credential and install it into ``vault_client``.

    The previous token stays in place if anything fails.
    """
    credential = obtain_credential(auth, vault_client, metadata)
    vault_client.set_token(credential.token)
    logger.info(f"Vault token set via {type(auth).__name__}")
    return credential
