"""Tests for ConnectorConfig conversion and file loading."""

import dataclasses
import json
import logging

import pytest

from uciconnector.common.config import (
    ConnectorConfig,
    load_config,
    normalize_path,
    safe_choice,
    safe_float,
    safe_int,
)
from uciconnector.core.constants import DEFAULT_MOVE_TIMEOUT, DEFAULT_READ_CHUNK_SIZE, DEFAULT_RESPONSE_DELAY
from uciconnector.core.errors import ConfigError


class TestConverters:
    @pytest.mark.parametrize(
        "value,expected",
        [(5, 5), ("12", 12), (None, 7), (True, 7), (2.5, 7), ("abc", 7)],
    )
    def test_safe_int(self, value, expected):
        assert safe_int(value, 7) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [(0.25, 0.25), (3, 3.0), ("1.5", 1.5), (None, 9.0), (False, 9.0), ("fast", 9.0)],
    )
    def test_safe_float(self, value, expected):
        assert safe_float(value, 9.0) == expected

    def test_safe_choice_case_insensitive(self):
        assert safe_choice("Fixed_Delay", ("deadline", "fixed_delay"), "deadline") == "fixed_delay"

    def test_safe_choice_unknown_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="uciconnector.common.config"):
            assert safe_choice("busy", ("deadline", "fixed_delay"), "deadline") == "deadline"
        assert "busy" in caplog.text

    @pytest.mark.parametrize("value", [None, "", "   ", 42])
    def test_normalize_path_empty(self, value):
        assert normalize_path(value) is None

    def test_normalize_path_keeps_value(self):
        assert normalize_path("/usr/games/stockfish") == "/usr/games/stockfish"


class TestConnectorConfig:
    def test_defaults(self):
        config = ConnectorConfig()
        assert config.engine_path is None
        assert config.response_delay == 0.5
        assert config.move_timeout == 5.0
        assert config.poll_strategy == "deadline"
        assert config.read_chunk_size == 2047
        assert config.channel_mode == "auto"
        assert config.startup_check_delay == 0.0

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            ConnectorConfig().move_timeout = 1.0

    def test_from_empty_dict(self):
        assert ConnectorConfig.from_dict({}) == ConnectorConfig()

    def test_from_dict_values(self):
        config = ConnectorConfig.from_dict(
            {
                "engine_path": "/opt/stockfish",
                "response_delay": 0.25,
                "move_timeout": "10",
                "poll_strategy": "fixed_delay",
                "read_chunk_size": 4096,
                "channel_mode": "threaded",
                "kill_timeout": 1,
            }
        )
        assert config.engine_path == "/opt/stockfish"
        assert config.response_delay == 0.25
        assert config.move_timeout == 10.0
        assert config.poll_strategy == "fixed_delay"
        assert config.read_chunk_size == 4096
        assert config.channel_mode == "threaded"
        assert config.kill_timeout == 1.0

    def test_from_dict_bad_values_fall_back(self):
        config = ConnectorConfig.from_dict(
            {
                "response_delay": -1,
                "move_timeout": "soon",
                "read_chunk_size": 0,
                "poll_strategy": None,
                "engine_path": "  ",
            }
        )
        assert config.response_delay == DEFAULT_RESPONSE_DELAY
        assert config.move_timeout == DEFAULT_MOVE_TIMEOUT
        assert config.read_chunk_size == DEFAULT_READ_CHUNK_SIZE
        assert config.poll_strategy == "deadline"
        assert config.engine_path is None

    def test_from_dict_ignores_unknown_keys(self):
        assert ConnectorConfig.from_dict({"hash_mb": 256}) == ConnectorConfig()


class TestLoadConfig:
    def test_json_with_section(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"connector": {"move_timeout": 2.5}, "ui": {"theme": "dark"}}))
        assert load_config(path).move_timeout == 2.5

    def test_json_without_section(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"engine_path": "/opt/engine"}))
        assert load_config(str(path)).engine_path == "/opt/engine"

    def test_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("connector:\n  poll_strategy: fixed_delay\n  response_delay: 0.1\n")
        config = load_config(path)
        assert config.poll_strategy == "fixed_delay"
        assert config.response_delay == 0.1

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_config(path) == ConnectorConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "missing.json")
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_json_syntax_error_has_line(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{\n  "move_timeout": 2.5,\n}\n')
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.context["line"] == 3

    def test_yaml_syntax_error_has_line(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("connector:\n  move_timeout: [1, 2\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert "line" in exc_info.value.context

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_mapping_section_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"connector": "stockfish"}))
        with pytest.raises(ConfigError):
            load_config(path)
