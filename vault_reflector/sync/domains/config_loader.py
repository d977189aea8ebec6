"""Configuration loader for vault-reflector."""
import os
import re
import logging
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigFileError, ConfigParseError, ConfigurationError
from .models import (
    AUTH_TYPE_GCP,
    AUTH_TYPE_KUBERNETES,
    AUTH_TYPE_TOKEN,
    DEFAULT_GCP_AUTH_PATH,
    DEFAULT_KUBERNETES_AUTH_PATH,
    DEFAULT_SERVICE_ACCOUNT_TOKEN_PATH,
    ENGINE_KV_V2,
    ENGINE_TYPES,
    GCPAuth,
    KubernetesAuth,
    ReflectorConfig,
    SecretMapping,
    StaticTokenAuth,
    TLSConfig,
    TrustConfig,
    VaultConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 30.0
DEFAULT_LISTEN_ADDRESS = ":8080"

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, None: 1}

# Kubernetes object names: DNS-1123 subdomain (secrets) and label (namespaces).
_DNS_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_LABEL_VALUE_RE = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?$")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a refresh interval into seconds.

    Accepts a bare number of seconds or a string such as ``"500ms"``,
    ``"30s"``, ``"5m"`` or ``"1h"``.

    Raises:
        ConfigurationError: If the value cannot be parsed or is not positive
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid refresh_interval: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value).strip())
        if not match:
            raise ConfigurationError(
                f"Invalid refresh_interval: {value!r}\n"
                f"Use a number of seconds or a duration like '30s', '5m', '1h'."
            )
        seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]

    if seconds <= 0:
        raise ConfigurationError(f"refresh_interval must be positive, got {value!r}")
    return seconds


def validate_secret_name(name: str) -> None:
    """Validate a Kubernetes secret name (DNS-1123 subdomain)."""
    if not name or len(name) > 253 or not _DNS_SUBDOMAIN_RE.match(name):
        raise ConfigurationError(
            f"Invalid secret name '{name}'\n"
            f"Secret names must be lowercase alphanumerics, '-' or '.', "
            f"start and end with an alphanumeric, and be at most 253 characters."
        )


def validate_namespace(namespace: str) -> None:
    """Validate a Kubernetes namespace (DNS-1123 label)."""
    if not namespace or len(namespace) > 63 or not _DNS_LABEL_RE.match(namespace):
        raise ConfigurationError(
            f"Invalid namespace '{namespace}'\n"
            f"Namespaces must be lowercase alphanumerics or '-', "
            f"start and end with an alphanumeric, and be at most 63 characters."
        )


def validate_label(label: str) -> None:
    """Validate the ownership label value stamped on reflected secrets."""
    if len(label) > 63 or not _LABEL_VALUE_RE.match(label):
        raise ConfigurationError(
            f"Invalid label '{label}'\n"
            f"Labels must be alphanumerics, '-', '_' or '.', "
            f"start and end with an alphanumeric, and be at most 63 characters."
        )


def _parse_auth(vault: Dict[str, Any]) -> TrustConfig:
    """Build the trust configuration for the selected ``auth_type``."""
    auth_type = vault.get("auth_type", AUTH_TYPE_TOKEN)
    role = vault.get("role") or None

    if auth_type == AUTH_TYPE_TOKEN:
        token = vault.get("token") or os.getenv("VAULT_TOKEN")
        if not token or not str(token).strip():
            raise ConfigurationError(
                "Missing 'vault.token' for token authentication\n"
                "Set vault.token in the config file or the VAULT_TOKEN environment variable."
            )
        return StaticTokenAuth(token=str(token).strip())

    if auth_type == AUTH_TYPE_GCP:
        return GCPAuth(
            role=role,
            audience=vault.get("audience") or None,
            auth_path=_normalize_path(vault.get("auth_path") or DEFAULT_GCP_AUTH_PATH),
        )

    if auth_type == AUTH_TYPE_KUBERNETES:
        return KubernetesAuth(
            role=role,
            auth_path=_normalize_path(vault.get("auth_path") or DEFAULT_KUBERNETES_AUTH_PATH),
            token_path=vault.get("token_path") or DEFAULT_SERVICE_ACCOUNT_TOKEN_PATH,
        )

    raise ConfigurationError(
        f"Unsupported vault auth type: {auth_type}\n"
        f"Supported types: {AUTH_TYPE_TOKEN}, {AUTH_TYPE_GCP}, {AUTH_TYPE_KUBERNETES}"
    )


def _normalize_path(path: str) -> str:
    return str(path).strip().strip("/")


def _parse_tls(tls: Optional[Dict[str, Any]]) -> Optional[TLSConfig]:
    if not tls:
        return None
    if not isinstance(tls, dict):
        raise ConfigurationError("'vault.tls' must be a mapping")
    return TLSConfig(
        ca_cert=tls.get("ca_cert"),
        client_cert=tls.get("client_cert"),
        client_key=tls.get("client_key"),
        insecure=bool(tls.get("insecure", False)),
    )


def _parse_engine_type(value: Any, where: str) -> str:
    if value not in ENGINE_TYPES:
        raise ConfigurationError(
            f"Unsupported engine type '{value}' in {where}\n"
            f"Supported types: {', '.join(ENGINE_TYPES)}"
        )
    return value


def _parse_mappings(raw: Any, namespace: str, default_engine_type: str) -> List[SecretMapping]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError("'mappings' must be a list")

    mappings = []
    targets = set()
    for index, item in enumerate(raw):
        where = f"mappings[{index}]"
        if not isinstance(item, dict):
            raise ConfigurationError(f"{where} must be a mapping")

        for required in ("vault_path", "secret_name"):
            if not item.get(required):
                raise ConfigurationError(f"Missing '{required}' in {where}")

        secret_name = str(item["secret_name"])
        mapping_namespace = str(item.get("namespace") or namespace)
        validate_secret_name(secret_name)
        validate_namespace(mapping_namespace)

        keys = item.get("keys")
        if keys is not None:
            if not isinstance(keys, dict) or not keys:
                raise ConfigurationError(f"'keys' in {where} must be a non-empty mapping")
            keys = {str(k): str(v) for k, v in keys.items()}

        mapping = SecretMapping(
            vault_path=_normalize_path(item["vault_path"]),
            secret_name=secret_name,
            namespace=mapping_namespace,
            engine_type=_parse_engine_type(item.get("engine_type", default_engine_type), where),
            secret_type=str(item.get("secret_type") or "Opaque"),
            keys=keys,
        )

        if mapping.target in targets:
            raise ConfigurationError(f"Duplicate target secret {mapping.target} in {where}")
        targets.add(mapping.target)
        mappings.append(mapping)

    return mappings


def parse_config(config: Dict[str, Any]) -> ReflectorConfig:
    """
    Validate a raw configuration dict and apply defaults.

    Args:
        config: Parsed YAML document

    Returns:
        ReflectorConfig ready for use

    Raises:
        ConfigurationError: If any section is missing or invalid
    """
    if not config:
        raise ConfigurationError("Configuration is empty")
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a mapping at the top level")

    vault = config.get("vault")
    if not isinstance(vault, dict):
        raise ConfigurationError(
            "Missing 'vault' section in config\n"
            "Required format:\n"
            "vault:\n"
            "  url: https://vault.example.com\n"
            "  auth_type: kubernetes"
        )

    # VAULT_ADDR overrides the config file, same as the vault CLI
    url = os.getenv("VAULT_ADDR") or vault.get("url")
    if not url:
        raise ConfigurationError("Missing 'vault.url' in config")

    default_engine_type = _parse_engine_type(
        vault.get("default_engine_type", ENGINE_KV_V2), "vault.default_engine_type"
    )

    namespace = str(config.get("namespace") or "default")
    validate_namespace(namespace)

    label = str(config.get("label") or "default")
    validate_label(label)

    reflector_config = ReflectorConfig(
        vault=VaultConfig(
            url=str(url),
            auth=_parse_auth(vault),
            default_engine_type=default_engine_type,
            tls=_parse_tls(vault.get("tls")),
        ),
        namespace=namespace,
        label=label,
        daemon=bool(config.get("daemon", False)),
        refresh_interval=parse_duration(config.get("refresh_interval", DEFAULT_REFRESH_INTERVAL)),
        listen_address=str(config.get("listen_address") or DEFAULT_LISTEN_ADDRESS),
        mappings=_parse_mappings(config.get("mappings"), namespace, default_engine_type),
    )

    if not reflector_config.mappings:
        logger.warning("No mappings configured, nothing will be reflected")

    return reflector_config


def load_config(config_path: str) -> ReflectorConfig:
    """
    Load and validate configuration from a YAML file.

    Raises:
        ConfigFileError: If the file cannot be read
        ConfigParseError: If the file is not valid YAML
        ConfigurationError: If the configuration is invalid
    """
    if not os.path.isfile(config_path):
        raise ConfigFileError(f"Configuration file not found at: {config_path}")

    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigFileError(f"Failed to read config file at {config_path}: {e}")

    config = parse_config(raw)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using vault at {config.vault.url} with {type(config.vault.auth).__name__}")
    logger.debug(f"Loaded {len(config.mappings)} mapping(s)")

    return config
