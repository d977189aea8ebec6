"""Exception hierarchy for vault-reflector.

Configuration errors are fatal and raised before any cycle runs.
Authentication errors abort a single refresh cycle. Mapping errors are
isolated to one mapping and collected into a ReflectionError.
"""
from typing import List


class ReflectorError(Exception):
    """Base class for all vault-reflector errors."""
    pass


class ConfigurationError(ReflectorError):
    """Configuration is missing, malformed or invalid."""
    pass


class ConfigFileError(ConfigurationError):
    """The configuration file could not be read."""
    pass


class ConfigParseError(ConfigurationError):
    """The configuration file is not valid YAML."""
    pass


class ClientSetupError(ReflectorError):
    """A Vault or Kubernetes client could not be constructed."""

    def __init__(self, client: str, message: str):
        super().__init__(f"unable to set up {client} client: {message}")
        self.client = client


class AuthenticationError(ReflectorError):
    """Obtaining a Vault token failed."""
    pass


class IdentityQueryError(AuthenticationError):
    """The environment identity (metadata server, service account) could not be resolved."""
    pass


class ExchangeError(AuthenticationError):
    """Vault rejected the identity assertion."""
    pass


class TokenDecodeError(AuthenticationError):
    """The service account token is not a well-formed JWT."""
    pass


class MappingError(ReflectorError):
    """A single mapping failed to reflect."""
    pass


class FetchError(MappingError):
    """Reading a secret from Vault failed, or a projected field is missing."""
    pass


class OwnershipConflict(MappingError):
    """The target secret exists but is not managed by this reflector."""
    pass


class WriteError(MappingError):
    """Reading or writing the target secret in Kubernetes failed."""
    pass


class ReflectionError(ReflectorError):
    """One or more mappings failed during a reflection run."""

    def __init__(self, failures: List[MappingError]):
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(f"{len(self.failures)} mapping(s) failed: {details}")
