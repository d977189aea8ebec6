"""Tests for CLI commands and exit codes."""
import sys
from unittest import mock

import pytest
import yaml
from urllib3.exceptions import MaxRetryError

from vault_reflector.cli import main as cli
from vault_reflector.sync.domains.errors import ClientSetupError, ExchangeError
from vault_reflector.sync.domains.k8s_client import ClusterSecretClient


def _run_cli(*argv):
    with mock.patch.object(sys, "argv", ["vault-reflector", *argv]):
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
    return exc_info.value.code


@pytest.fixture
def config_file(tmp_path):
    config_file = tmp_path / "config.yml"
    with open(config_file, 'w') as f:
        yaml.dump({
            "vault": {"url": "https://vault.example.com", "auth_type": "token", "token": "s.static"},
            "mappings": [
                {
                    "vault_path": "secret/data/db",
                    "secret_name": "db-creds",
                    "namespace": "ns1",
                    "keys": {"password": "password"},
                },
            ],
        }, f)
    return config_file


@pytest.fixture
def clients(fake_store, fake_cluster):
    """Patch client construction to hand out the in-memory fakes."""
    with mock.patch(
        "vault_reflector.sync.domains.vault_client.VaultSecretClient.from_config",
        return_value=fake_store,
    ), mock.patch(
        "vault_reflector.sync.domains.k8s_client.ClusterSecretClient.from_environment",
        return_value=fake_cluster,
    ):
        yield fake_store, fake_cluster


class TestVersionAndUsage:
    """Test suite for version and usage handling."""

    def test_version(self, capsys):
        with mock.patch.object(sys, "argv", ["vault-reflector", "version"]):
            cli.main()

        assert capsys.readouterr().out.startswith("vault-reflector ")

    def test_no_command_is_usage_error(self):
        assert _run_cli() == cli.EXIT_USAGE


class TestValidateCommand:
    """Test suite for the validate command."""

    def test_valid_config(self, config_file, capsys):
        with mock.patch.object(sys, "argv", ["vault-reflector", "validate", str(config_file)]):
            cli.main()

        out = capsys.readouterr().out
        assert "secret/data/db -> ns1/db-creds" in out
        assert "Success" in out

    def test_missing_file(self, tmp_path):
        assert _run_cli("validate", str(tmp_path / "missing.yml")) == 20

    def test_unparseable_file(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("vault: [unclosed\n")

        assert _run_cli("validate", str(config_file)) == 21

    def test_invalid_config(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("vault:\n  url: https://vault.example.com\n  auth_type: approle\n")

        assert _run_cli("validate", str(config_file)) == 22

    def test_invalid_label_exit_code(self, tmp_path):
        config_file = tmp_path / "config.yml"
        config_file.write_text("vault:\n  url: https://vault.example.com\n  token: s.abc\nlabel: prod team\n")

        assert _run_cli("validate", str(config_file)) == 22


class TestRunCommand:
    """Test suite for one-shot runs."""

    def test_one_shot_success(self, config_file, clients, secret_data):
        store, cluster = clients
        store.secrets["secret/data/db"] = {"password": "s3cr3t"}

        assert _run_cli("run", str(config_file)) == 0
        assert store.token == "s.static"
        assert secret_data(cluster.objects[("ns1", "db-creds")]) == {"password": b"s3cr3t"}

    def test_reflection_failure_exit_code(self, config_file, clients, capsys):
        assert _run_cli("run", str(config_file)) == 40

        err = capsys.readouterr().err
        assert "1 mapping(s) failed" in err
        assert "no secret found at secret/data/db" in err

    def test_kubernetes_transport_error_exit_code(self, config_file, fake_store):
        """Test an unreachable API server fails the run with the reflection exit code."""
        fake_store.secrets["secret/data/db"] = {"password": "s3cr3t"}
        api = mock.Mock()
        api.read_namespaced_secret.side_effect = MaxRetryError(None, "/api/v1", reason="connection refused")
        with mock.patch(
            "vault_reflector.sync.domains.vault_client.VaultSecretClient.from_config",
            return_value=fake_store,
        ), mock.patch(
            "vault_reflector.sync.domains.k8s_client.ClusterSecretClient.from_environment",
            return_value=ClusterSecretClient(api),
        ):
            assert _run_cli("run", str(config_file)) == 40

    def test_vault_client_setup_failure(self, config_file):
        with mock.patch(
            "vault_reflector.sync.domains.vault_client.VaultSecretClient.from_config",
            side_effect=ClientSetupError("vault", "bad url"),
        ):
            assert _run_cli("run", str(config_file)) == 30

    def test_kubernetes_client_setup_failure(self, config_file, fake_store):
        with mock.patch(
            "vault_reflector.sync.domains.vault_client.VaultSecretClient.from_config",
            return_value=fake_store,
        ), mock.patch(
            "vault_reflector.sync.domains.k8s_client.ClusterSecretClient.from_environment",
            side_effect=ClientSetupError("kubernetes", "no config"),
        ):
            assert _run_cli("run", str(config_file)) == 31

    def test_auth_failure_exit_code(self, config_file, clients):
        with mock.patch(
            "vault_reflector.sync.workflows.authenticate.obtain_credential",
            side_effect=ExchangeError("denied"),
        ):
            assert _run_cli("run", str(config_file)) == 32

    def test_once_overrides_daemon(self, tmp_path, clients):
        """Test --once runs a single reflection even with daemon: true."""
        store, cluster = clients
        store.secrets["secret/data/db"] = {"password": "s3cr3t"}
        config_file = tmp_path / "config.yml"
        with open(config_file, 'w') as f:
            yaml.dump({
                "vault": {"url": "https://vault.example.com", "token": "s.static"},
                "daemon": True,
                "mappings": [{"vault_path": "secret/data/db", "secret_name": "db-creds"}],
            }, f)

        with mock.patch("vault_reflector.sync.workflows.refresh_loop.RefreshLoop.run") as loop_run:
            assert _run_cli("run", "--once", str(config_file)) == 0

        loop_run.assert_not_called()
        assert ("default", "db-creds") in cluster.objects

    def test_daemon_mode_runs_refresh_loop(self, tmp_path, clients):
        config_file = tmp_path / "config.yml"
        with open(config_file, 'w') as f:
            yaml.dump({
                "vault": {"url": "https://vault.example.com", "token": "s.static"},
                "daemon": True,
                "listen_address": "127.0.0.1:0",
                "refresh_interval": "15s",
            }, f)

        with mock.patch("vault_reflector.sync.workflows.refresh_loop.RefreshLoop.run") as loop_run, \
                mock.patch("vault_reflector.cli.main.signal.signal"):
            assert _run_cli("run", str(config_file)) == 0

        loop_run.assert_called_once_with()
