"""Input validation for CLI arguments."""
import os
import sys

EXIT_CONFIG_READ = 20


def validate_config_path(path: str) -> None:
    """
    Validate the configuration file argument points at a readable file.

    Args:
        path: Path given on the command line

    Raises:
        SystemExit with code 20 if validation fails
    """
    if not path:
        print("Error: Config file path cannot be empty", file=sys.stderr)
        sys.exit(EXIT_CONFIG_READ)

    if not os.path.exists(path):
        print(f"Error: Config file does not exist: {path}", file=sys.stderr)
        print("\nExample config:", file=sys.stderr)
        print("  vault:", file=sys.stderr)
        print("    url: https://vault.example.com", file=sys.stderr)
        print("    auth_type: kubernetes", file=sys.stderr)
        print("  mappings:", file=sys.stderr)
        print("    - vault_path: secret/data/db", file=sys.stderr)
        print("      secret_name: db-creds", file=sys.stderr)
        sys.exit(EXIT_CONFIG_READ)

    if not os.path.isfile(path):
        print(f"Error: Path is not a file: {path}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_READ)

    if not os.access(path, os.R_OK):
        print(f"Error: Config file is not readable: {path}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_READ)
