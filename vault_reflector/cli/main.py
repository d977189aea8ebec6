"""CLI entrypoint for vault-reflector."""
import sys
import signal
import argparse
import logging

from vault_reflector import __version__

from .validators import EXIT_CONFIG_READ, validate_config_path

VERSION = __version__

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_CONFIG_PARSE = 21
EXIT_CONFIG_INVALID = 22
EXIT_VAULT_CLIENT = 30
EXIT_K8S_CLIENT = 31
EXIT_AUTH = 32
EXIT_REFLECT = 40

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _set_verbosity(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


def _load_config_or_exit(path: str):
    """Load configuration, exiting with the code for the failing step."""
    from vault_reflector.sync.domains.config_loader import load_config
    from vault_reflector.sync.domains.errors import (
        ConfigFileError,
        ConfigParseError,
        ConfigurationError,
    )

    validate_config_path(path)
    try:
        return load_config(path)
    except ConfigFileError as e:
        print(f"Error opening configuration file: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_READ)
    except ConfigParseError as e:
        print(f"Error parsing configuration file: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_PARSE)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_INVALID)


def cmd_version(args):
    """Show version information."""
    print(f"vault-reflector {VERSION}")


def cmd_validate(args):
    """Validate a configuration file and summarise it."""
    config = _load_config_or_exit(args.config)

    print(f"Vault: {config.vault.url} ({type(config.vault.auth).__name__})")
    print(f"Label: {config.label}")
    print(f"Mode: {'daemon' if config.daemon else 'one-shot'}")
    if config.daemon:
        print(f"Refresh interval: {config.refresh_interval}s")
        print(f"Listen address: {config.listen_address}")
    print(f"Mappings ({len(config.mappings)}):")
    for mapping in config.mappings:
        keys = ", ".join(mapping.keys) if mapping.keys else "all fields"
        print(f"  {mapping.vault_path} -> {mapping.target} [{mapping.engine_type}; {keys}]")
    print("Success: configuration is valid")


def cmd_run(args):
    """Reflect secrets once, or forever in daemon mode."""
    from vault_reflector.sync.domains.errors import AuthenticationError, ClientSetupError, ReflectionError
    from vault_reflector.sync.domains.k8s_client import ClusterSecretClient
    from vault_reflector.sync.domains.status import MetricsServer, StatusGauge
    from vault_reflector.sync.domains.vault_client import VaultSecretClient
    from vault_reflector.sync.workflows.authenticate import set_vault_token
    from vault_reflector.sync.workflows.reflect import Reflector
    from vault_reflector.sync.workflows.refresh_loop import RefreshLoop

    config = _load_config_or_exit(args.config)
    daemon = config.daemon and not args.once

    try:
        vault_client = VaultSecretClient.from_config(config.vault)
    except ClientSetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_VAULT_CLIENT)

    try:
        cluster = ClusterSecretClient.from_environment()
    except ClientSetupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_K8S_CLIENT)

    reflector = Reflector(vault_client, cluster, config.label)

    def authenticate():
        return set_vault_token(vault_client, config.vault.auth)

    def reflect():
        return reflector.reflect(config.mappings)

    if not daemon:
        try:
            authenticate()
        except AuthenticationError as e:
            print(f"Error setting vault token: {e}", file=sys.stderr)
            sys.exit(EXIT_AUTH)

        result = reflect()
        try:
            result.raise_for_failures()
        except ReflectionError as e:
            print(f"Error reflecting vault values into kubernetes: {len(e.failures)} mapping(s) failed", file=sys.stderr)
            for failure in e.failures:
                print(f"  {failure}", file=sys.stderr)
            sys.exit(EXIT_REFLECT)

        print(f"Success: reflected {len(result.outcomes)} secret(s)")
        sys.exit(EXIT_OK)

    status = StatusGauge()
    try:
        server = MetricsServer(status, config.listen_address)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_INVALID)
    server.start()

    loop = RefreshLoop(authenticate, reflect, status, config.refresh_interval)

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, stopping")
        loop.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    logger.warning(f"Running as a daemon. Refresh interval is {config.refresh_interval}s")
    try:
        loop.run()
    finally:
        server.stop()
    sys.exit(EXIT_OK)


def main():
    """Main CLI entrypoint.

    Exit codes:
        0  - Success
        2  - Usage errors (invalid arguments)
        20 - Configuration file missing or unreadable
        21 - Configuration file is not valid YAML
        22 - Configuration invalid
        30 - Vault client setup failed
        31 - Kubernetes client setup failed
        32 - Vault authentication failed (one-shot mode)
        40 - Reflection failed (one-shot mode)
    """
    parser = argparse.ArgumentParser(
        prog="vault-reflector",
        description="vault-reflector - copy HashiCorp Vault secrets into Kubernetes secrets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0  - Success
  2  - Usage error (invalid arguments)
  20 - Configuration file missing or unreadable
  21 - Configuration file is not valid YAML
  22 - Configuration invalid
  30 - Vault client setup failed
  31 - Kubernetes client setup failed
  32 - Vault authentication failed (one-shot mode)
  40 - Reflection failed (one-shot mode)

Environment variables:
  VAULT_ADDR        - Vault URL (overrides vault.url)
  VAULT_TOKEN       - Vault token for token auth (when vault.token is unset)
  GCE_METADATA_HOST - Metadata server host for gcp-default auth
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v for info, -vv for debug)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # version command
    _version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of vault-reflector"
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a configuration file",
        description="Load and validate a configuration file without contacting Vault or Kubernetes"
    )
    validate_parser.add_argument("config", help="Path to the YAML configuration file")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Reflect secrets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Reflect Vault secrets into Kubernetes secrets.

One-shot mode (default): authenticate, reflect every mapping once, exit.
Daemon mode (daemon: true): serve /metrics on listen_address and
re-authenticate and reflect every refresh_interval until terminated.

Secrets are only overwritten when they carry the ownership label
vault-reflector=<label>. Secrets without it are reported and left alone.
        """
    )
    run_parser.add_argument("config", help="Path to the YAML configuration file")
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reflection even if the config enables daemon mode"
    )

    args = parser.parse_args()
    _set_verbosity(args.verbose)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(EXIT_USAGE)

    # Route to command handlers
    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "validate":
            cmd_validate(args)
        elif args.command == "run":
            cmd_run(args)
        else:
            parser.print_help()
            sys.exit(EXIT_USAGE)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
