"""Tests for the serve-s3 command-line entry point."""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from serve_s3.cli import apply_overrides, main, parse_args
from serve_s3.config import ServeS3Config

_CONFIG = {
    "server": {"host": "127.0.0.1", "port": 9000},
    "storage": {"backend": "memory"},
    "observability": {"metrics": False},
    "routes": [{"path": "/files/{path:path}", "bucket": "b"}],
}


def _write_config(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "serve-s3.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestParseArgs:
    """Tests for parse_args()."""

    def test_defaults(self):
        args = parse_args([])
        assert args.config == Path("serve-s3.yaml")
        assert args.check is False
        assert args.host is None
        assert args.port is None
        assert args.shutdown_timeout is None

    def test_rejects_unknown_log_format(self):
        with pytest.raises(SystemExit):
            parse_args(["--log-format", "xml"])

    def test_log_level_is_case_insensitive(self):
        assert parse_args(["--log-level", "debug"]).log_level == "DEBUG"


class TestApplyOverrides:
    """Tests for apply_overrides()."""

    def test_only_given_flags_override(self):
        config = ServeS3Config()

        apply_overrides(config, parse_args(["--port", "9100", "--shutdown-timeout", "5"]))

        assert config.server.port == 9100
        assert config.server.shutdown_timeout == 5
        assert config.server.host == "0.0.0.0"
        assert config.server.log_format == "text"


class TestMain:
    """Tests for main()."""

    def test_runs_uvicorn_with_overrides(self, tmp_path):
        config_path = _write_config(tmp_path, _CONFIG)

        with (
            patch("serve_s3.cli.uvicorn.run") as run,
            patch("serve_s3.cli.configure_logging") as configure,
        ):
            main(["--config", str(config_path), "--port", "9100", "--log-format", "json"])

        configure.assert_called_once_with(level="INFO", fmt="json")
        _, kwargs = run.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9100
        assert kwargs["log_level"] == "info"

    def test_missing_config_exits(self, tmp_path):
        with patch("serve_s3.cli.uvicorn.run") as run:
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(tmp_path / "nope.yaml")])
        assert exc_info.value.code == 1
        run.assert_not_called()

    def test_invalid_route_exits(self, tmp_path):
        data = {**_CONFIG, "routes": [{"path": "/x", "key": "no-bucket"}]}
        config_path = _write_config(tmp_path, data)

        with (
            patch("serve_s3.cli.uvicorn.run") as run,
            patch("serve_s3.cli.configure_logging"),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(config_path)])

        assert exc_info.value.code == 1
        run.assert_not_called()

    def test_shutdown_timeout_reaches_uvicorn(self, tmp_path):
        config_path = _write_config(tmp_path, _CONFIG)

        with (
            patch("serve_s3.cli.uvicorn.run") as run,
            patch("serve_s3.cli.configure_logging"),
        ):
            main(["--config", str(config_path), "--shutdown-timeout", "7"])

        _, kwargs = run.call_args
        assert kwargs["timeout_graceful_shutdown"] == 7
        assert kwargs["access_log"] is False

    def test_check_validates_without_serving(self, tmp_path):
        config_path = _write_config(tmp_path, _CONFIG)

        with (
            patch("serve_s3.cli.uvicorn.run") as run,
            patch("serve_s3.cli.configure_logging"),
        ):
            main(["--config", str(config_path), "--check"])

        run.assert_not_called()

    def test_check_reports_invalid_route(self, tmp_path):
        data = {**_CONFIG, "routes": [{"path": "/x", "bucket": "b", "mode": "download"}]}
        config_path = _write_config(tmp_path, data)

        with (
            patch("serve_s3.cli.uvicorn.run") as run,
            patch("serve_s3.cli.configure_logging"),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(config_path), "--check"])

        assert exc_info.value.code == 1
        run.assert_not_called()

    def test_unknown_log_level_in_config_exits(self, tmp_path):
        data = {**_CONFIG, "server": {"log_level": "LOUD"}}
        config_path = _write_config(tmp_path, data)

        with patch("serve_s3.cli.uvicorn.run") as run:
            with pytest.raises(SystemExit) as exc_info:
                main(["--config", str(config_path)])

        assert exc_info.value.code == 1
        run.assert_not_called()
