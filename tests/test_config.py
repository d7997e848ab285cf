"""Tests for Settings configuration model."""

from pathlib import Path

from companion.config import Settings


class TestGetKnownNames:
    def test_parses_comma_separated(self):
        s = Settings(known_names="Maya,Sam")
        assert s.get_known_names() == ["maya", "sam"]

    def test_handles_spaces(self):
        s = Settings(known_names=" Maya , Sam ,, ")
        assert s.get_known_names() == ["maya", "sam"]

    def test_empty_string_returns_empty_list(self):
        s = Settings(known_names="  ")
        assert s.get_known_names() == []


class TestDefaults:
    def test_agent_defaults(self):
        s = Settings()
        assert s.agent_command == "claude"
        assert s.agent_max_concurrent == 4
        assert s.agent_timeout_ms == 30000
        assert s.agent_config_dir == Path("cortex")

    def test_memory_timeouts(self):
        s = Settings()
        assert s.memory_search_timeout == 10.0
        assert s.memory_store_timeout == 15.0
        assert s.memory_health_timeout == 5.0

    def test_retry_defaults(self):
        s = Settings()
        assert (s.retry_max_attempts, s.retry_base_delay_ms, s.retry_max_delay_ms) == (3, 1000, 10000)

    def test_feature_switches_off(self):
        s = Settings()
        assert s.deep_unconscious_enabled is False
        assert s.serialize_turns is False

    def test_explicit_values_win(self):
        s = Settings(agent_max_concurrent=8, log_level="DEBUG")
        assert s.agent_max_concurrent == 8
        assert s.log_level == "DEBUG"
