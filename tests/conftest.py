"""Shared fixtures and in-memory fakes for the Vault and Kubernetes clients."""
import base64
import copy
import json

import pytest
from kubernetes import client

from vault_reflector.sync.domains.errors import FetchError, WriteError
from vault_reflector.sync.domains.models import ENGINE_KV_V2


def make_jwt(payload, pad=False):
    """Build an unsigned three-segment JWT around ``payload``."""
    def encode(obj):
        raw = base64.urlsafe_b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")
        return raw if pad else raw.rstrip("=")

    return ".".join([encode({"alg": "RS256", "kid": "test"}), encode(payload), "signature"])


class FakeStore:
    """In-memory stand-in for VaultSecretClient."""

    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})
        self.fetches = []
        self.token = None

    def set_token(self, token):
        self.token = token

    def fetch(self, path, engine_type=ENGINE_KV_V2):
        self.fetches.append(path)
        if path not in self.secrets:
            raise FetchError(f"no secret found at {path}")
        return dict(self.secrets[path])


class FakeCluster:
    """In-memory stand-in for ClusterSecretClient keyed by (namespace, name)."""

    def __init__(self):
        self.objects = {}
        self.creates = []
        self.updates = []
        self.fail_writes_for = set()

    def add(self, secret):
        self.objects[(secret.metadata.namespace, secret.metadata.name)] = secret

    def get(self, name, namespace):
        secret = self.objects.get((namespace, name))
        return copy.deepcopy(secret) if secret is not None else None

    def create(self, secret):
        key = (secret.metadata.namespace, secret.metadata.name)
        if key in self.fail_writes_for:
            raise WriteError(f"error creating secret {key[0]}/{key[1]}: 500 boom")
        self.creates.append(key)
        self.objects[key] = copy.deepcopy(secret)

    def update(self, secret):
        key = (secret.metadata.namespace, secret.metadata.name)
        if key in self.fail_writes_for:
            raise WriteError(f"error updating secret {key[0]}/{key[1]}: 500 boom")
        self.updates.append(key)
        self.objects[key] = copy.deepcopy(secret)


def unmanaged_secret(name, namespace, data=None, labels=None):
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        type="Opaque",
        data=data or {"password": base64.b64encode(b"hand-made").decode("ascii")},
    )


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_cluster():
    return FakeCluster()


@pytest.fixture(autouse=True)
def clean_vault_env(monkeypatch):
    """Keep the developer's VAULT_* variables out of the tests."""
    monkeypatch.delenv("VAULT_ADDR", raising=False)
    monkeypatch.delenv("VAULT_TOKEN", raising=False)
    monkeypatch.delenv("GCE_METADATA_HOST", raising=False)


@pytest.fixture
def jwt_factory():
    return make_jwt


@pytest.fixture
def unmanaged_secret_factory():
    return unmanaged_secret


def decode_secret_data(secret):
    """Return the decoded byte values of a V1Secret."""
    return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}


@pytest.fixture
def secret_data():
    return decode_secret_data
