"""
Unit tests for the command-line entry point.
"""

import pytest

from wirehttp.__main__ import build_parser, config_from_args, main


class TestCLI:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("HTTP_PORT", raising=False)
        config = config_from_args(build_parser().parse_args([]))

        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.keep_alive is True

    def test_flags_override(self, tmp_path):
        args = build_parser().parse_args([
            "-H", "0.0.0.0",
            "-p", "3000",
            "-w", "3",
            "--no-keep-alive",
            "--static", str(tmp_path),
            "--static-prefix", "/assets",
            "-l", "DEBUG",
        ])

        config = config_from_args(args)

        assert config.host == "0.0.0.0"
        assert config.port == 3000
        assert (config.min_workers, config.max_workers) == (3, 6)
        assert config.keep_alive is False
        assert config.static_dir == str(tmp_path)
        assert config.static_url_prefix == "/assets"
        assert config.log_level == "DEBUG"

    def test_env_used_when_flag_missing(self, monkeypatch):
        monkeypatch.setenv("HTTP_PORT", "9100")

        assert config_from_args(build_parser().parse_args([])).port == 9100

    def test_invalid_config_exits_2(self, capsys):
        assert main(["--port", "70000"]) == 2
        assert "Invalid port" in capsys.readouterr().err

    def test_missing_static_dir(self, tmp_path, capsys):
        assert main(["--static", str(tmp_path / "nope")]) == 2
        assert "does not exist" in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])
        assert "wirehttp 1.0.0" in capsys.readouterr().out
