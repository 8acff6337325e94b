"""
Unit tests for the Telemetry Core Module.
"""

import json
import uuid
from unittest.mock import MagicMock, patch

import pytest
import yaml

from sfca_lsp.core.telemetry import LogOnlyTelemetryService, TelemetryClient, create_telemetry_service


class TestTelemetryClient:
    """Test the TelemetryClient class."""

    @pytest.fixture
    def mock_config_path(self, tmp_path):
        """Create a temporary config file."""
        return tmp_path / "config.yaml"

    def test_is_enabled_default_false(self, mock_config_path):
        """Test telemetry is disabled by default if config is missing."""
        client = TelemetryClient(config_path=mock_config_path)
        assert client.is_enabled is False

    def test_is_enabled_explicit_true(self, mock_config_path):
        """Test telemetry is enabled when config says so."""
        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": True}}))

        client = TelemetryClient(config_path=mock_config_path)
        assert client.is_enabled is True

    def test_is_enabled_reread_on_change(self, mock_config_path):
        """Test flipping the flag takes effect without a new client."""
        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": True}}))
        client = TelemetryClient(config_path=mock_config_path)
        assert client.is_enabled is True

        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": False}}))
        assert client.is_enabled is False

    def test_invalid_yaml_is_disabled(self, mock_config_path):
        mock_config_path.write_text("telemetry: [unclosed")
        assert TelemetryClient(config_path=mock_config_path).is_enabled is False

    def test_distinct_id_generation(self, mock_config_path):
        """Test distinct_id generation when config is missing."""
        client = TelemetryClient(config_path=mock_config_path)

        distinct_id = client.distinct_id
        assert uuid.UUID(distinct_id)

        # Should be persistent in memory for the instance
        assert client.distinct_id == distinct_id

    def test_distinct_id_from_config(self, mock_config_path):
        """Test distinct_id is read from config if present."""
        mock_config_path.write_text(yaml.dump({"telemetry": {"distinct_id": "user_123"}}))

        client = TelemetryClient(config_path=mock_config_path)
        assert client.distinct_id == "user_123"

    @patch("sfca_lsp.core.telemetry.POSTHOG_API_KEY", "phc_test")
    @patch("sfca_lsp.core.telemetry.request.urlopen")
    @patch("sfca_lsp.core.telemetry.request.Request")
    def test_track_sends_request_when_enabled(self, mock_request, mock_urlopen, mock_config_path):
        """Test that track() sends an HTTP request when enabled."""
        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": True}}))
        client = TelemetryClient(config_path=mock_config_path)

        with patch("threading.Thread") as mock_thread:
            client.track("test_event", {"foo": "bar"})

            assert mock_thread.called
            kwargs = mock_thread.call_args.kwargs
            # Run the thread's target inline to exercise the network path.
            kwargs["target"](*kwargs["args"])

        url = mock_request.call_args.args[0]
        payload = json.loads(mock_request.call_args.kwargs["data"])

        assert url.endswith("/capture/")
        assert payload["api_key"] == "phc_test"
        assert payload["event"] == "test_event"
        assert payload["properties"]["foo"] == "bar"
        assert payload["properties"]["distinct_id"] == client.distinct_id
        assert payload["properties"]["$lib"] == "sfca-lsp"

    @patch("sfca_lsp.core.telemetry.POSTHOG_API_KEY", "phc_test")
    def test_finished_threads_are_dropped(self, mock_config_path):
        """A long-running server must not accumulate one thread per event."""
        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": True}}))
        client = TelemetryClient(config_path=mock_config_path)

        with patch("threading.Thread", side_effect=lambda **kwargs: MagicMock(**{"is_alive.return_value": False})):
            for i in range(50):
                client.track(f"event_{i}")

        assert len(client._threads) == 1

    def test_track_does_nothing_when_disabled(self, mock_config_path):
        """Test that track() exits early when disabled."""
        client = TelemetryClient(config_path=mock_config_path)

        with patch("threading.Thread") as mock_thread:
            client.track("test_event")
            assert not mock_thread.called

    @patch("sfca_lsp.core.telemetry.POSTHOG_API_KEY", "")
    def test_track_does_nothing_without_api_key(self, mock_config_path):
        mock_config_path.write_text(yaml.dump({"telemetry": {"enabled": True}}))
        client = TelemetryClient(config_path=mock_config_path)

        with patch("threading.Thread") as mock_thread:
            client.track("test_event")
            assert not mock_thread.called

    @patch("sfca_lsp.core.telemetry.request.urlopen", side_effect=OSError("offline"))
    def test_send_request_failure_is_silent(self, mock_urlopen, mock_config_path):
        client = TelemetryClient(config_path=mock_config_path)
        client._send_request({"event": "x"})
        assert mock_urlopen.called

    def test_send_exception_is_an_exception_event(self, mock_config_path):
        client = TelemetryClient(config_path=mock_config_path)

        with patch.object(client, "track") as mock_track:
            client.send_exception("scan_failed", "boom", {"duration": "12"})

        mock_track.assert_called_once_with(
            "$exception", {"exception_name": "scan_failed", "message": "boom", "duration": "12"}
        )

    def test_send_command_event_tracks(self, mock_config_path):
        client = TelemetryClient(config_path=mock_config_path)

        with patch.object(client, "track") as mock_track:
            client.send_command_event("scan_done", {"duration": "12"})

        mock_track.assert_called_once_with("scan_done", {"duration": "12"})


class TestCreateTelemetryService:
    """Test service selection."""

    def test_enabled_returns_client(self, tmp_path):
        service = create_telemetry_service(tmp_path / "config.yaml", enabled=True)
        assert isinstance(service, TelemetryClient)

    def test_disabled_returns_log_only(self, tmp_path):
        service = create_telemetry_service(tmp_path / "config.yaml", enabled=False)
        assert isinstance(service, LogOnlyTelemetryService)

    def test_log_only_accepts_calls(self):
        service = LogOnlyTelemetryService()
        service.send_command_event("e", {"a": 1})
        service.send_exception("e", "msg")
