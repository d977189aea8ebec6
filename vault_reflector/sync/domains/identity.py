"""Environment identity sources: the GCE metadata server and service account tokens."""
import os
import json
import base64
import binascii
import logging
from typing import Any, Dict, Optional

import requests

from .errors import IdentityQueryError, TokenDecodeError

logger = logging.getLogger(__name__)

METADATA_HOST = "metadata.google.internal"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
METADATA_TIMEOUT = 5

DEFAULT_EMAIL_PATH = "instance/service-accounts/default/email"
DEFAULT_IDENTITY_PATH = "instance/service-accounts/default/identity"

# Legacy service account tokens carry the name as a flat claim; projected
# (bound) tokens nest it under "kubernetes.io".
SERVICE_ACCOUNT_NAME_CLAIM = "kubernetes.io/serviceaccount/service-account.name"


class GCPMetadataClient:
    """Minimal client for the GCE metadata server."""

    def __init__(self, host: Optional[str] = None, session: Optional[requests.Session] = None):
        # GCE_METADATA_HOST is honoured by the google client libraries too
        self.host = host or os.getenv("GCE_METADATA_HOST") or METADATA_HOST
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Lazy-initialize session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def query(self, path: str, params: Optional[Dict[str, str]] = None) -> str:
        """
        Fetch a metadata value.

        Args:
            path: Path below ``computeMetadata/v1/``
            params: Optional query string parameters

        Returns:
            Response body with surrounding whitespace stripped

        Raises:
            IdentityQueryError: If the server is unreachable or answers with an error
        """
        url = f"http://{self.host}/computeMetadata/v1/{path.lstrip('/')}"
        try:
            response = self.session.get(
                url, params=params, headers=METADATA_HEADERS, timeout=METADATA_TIMEOUT
            )
        except requests.exceptions.RequestException as e:
            raise IdentityQueryError(f"error querying metadata server for {path}: {e}")

        if response.status_code != 200:
            raise IdentityQueryError(
                f"metadata server returned {response.status_code} for {path}"
            )
        return response.text.strip()

    def default_service_account_email(self) -> str:
        return self.query(DEFAULT_EMAIL_PATH)

    def identity_token(self, audience: str) -> str:
        """Request a signed instance identity JWT for ``audience``."""
        return self.query(DEFAULT_IDENTITY_PATH, params={"audience": audience, "format": "full"})


def read_service_account_token(path: str) -> str:
    """
    Read the mounted service account bearer token.

    Raises:
        IdentityQueryError: If the token file cannot be read or is empty
    """
    try:
        with open(path, 'r') as f:
            token = f.read().strip()
    except OSError as e:
        raise IdentityQueryError(f"error reading service account token at {path}: {e}")

    if not token:
        raise IdentityQueryError(f"service account token at {path} is empty")
    return token


def check_token_structure(token: str) -> None:
    """Reject anything that is not a three-segment JWT."""
    segments = token.split(".")
    if len(segments) != 3:
        raise TokenDecodeError(
            f"invalid token format: expected 3 segments, got {len(segments)}"
        )


def _b64decode(segment: str) -> bytes:
    """Decode standard or URL-safe base64, with or without padding."""
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))


def decode_token_payload(token: str) -> Dict[str, Any]:
    """
    Decode the claims segment of a JWT without verifying its signature.

    Raises:
        TokenDecodeError: On a malformed token or a non-object payload
    """
    check_token_structure(token)
    try:
        payload = json.loads(_b64decode(token.split(".")[1]))
    except (binascii.Error, ValueError) as e:
        raise TokenDecodeError(f"unable to decode token payload: {e}")

    if not isinstance(payload, dict):
        raise TokenDecodeError("token payload is not a JSON object")
    return payload


def service_account_name(payload: Dict[str, Any]) -> str:
    """
    Extract the service account name from decoded token claims.

    Raises:
        TokenDecodeError: If the claims name no service account
    """
    name = payload.get(SERVICE_ACCOUNT_NAME_CLAIM)
    if not name:
        nested = payload.get("kubernetes.io")
        account = nested.get("serviceaccount") if isinstance(nested, dict) else None
        if isinstance(account, dict):
            name = account.get("name")

    if not name or not isinstance(name, str):
        raise TokenDecodeError("token payload does not name a service account")
    return name
