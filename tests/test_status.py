"""Tests for the status gauge and metrics endpoint."""
import pytest
import requests

from vault_reflector.sync.domains.status import MetricsServer, StatusGauge, parse_listen_address


class TestStatusGauge:
    """Test suite for StatusGauge."""

    def test_starts_at_failure(self):
        assert StatusGauge().value == 0

    def test_set_success_and_failure(self):
        gauge = StatusGauge()

        gauge.set_success()
        assert gauge.value == 1

        gauge.set_failure()
        assert gauge.value == 0

    def test_export_prometheus(self):
        gauge = StatusGauge()
        gauge.set_success()

        output = gauge.export_prometheus()

        assert "# TYPE vault_reflector_status gauge" in output
        assert "vault_reflector_status 1.0" in output


class TestListenAddress:
    """Test suite for listen address parsing."""

    @pytest.mark.parametrize("address,expected", [
        (":8080", ("0.0.0.0", 8080)),
        ("127.0.0.1:9102", ("127.0.0.1", 9102)),
        ("[::1]:9102", ("::1", 9102)),
    ])
    def test_valid(self, address, expected):
        assert parse_listen_address(address) == expected

    @pytest.mark.parametrize("address", ["8080", "localhost:", "host:http"])
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            parse_listen_address(address)


class TestMetricsServer:
    """Test suite for MetricsServer."""

    def test_serves_current_status(self):
        gauge = StatusGauge()
        server = MetricsServer(gauge, "127.0.0.1:0")
        server.start()
        try:
            url = f"http://127.0.0.1:{server.port}"
            assert "vault_reflector_status 0.0" in requests.get(f"{url}/metrics", timeout=5).text

            gauge.set_success()
            assert "vault_reflector_status 1.0" in requests.get(f"{url}/metrics", timeout=5).text

            assert requests.get(f"{url}/healthz", timeout=5).status_code == 200
            assert requests.get(f"{url}/other", timeout=5).status_code == 404
        finally:
            server.stop()
