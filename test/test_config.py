"""Unit tests for ping configuration."""

from pathlib import Path

import pytest

from common.config import ConfigError, PingConfig, apply_env, load_config, parse_duration


def _write(tmp_path: Path, text: str, name: str = "ping.yaml") -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


@pytest.mark.unit
class TestPingConfig:
    """Tests for PingConfig defaults and validation."""

    def test_defaults(self) -> None:
        """Test PingConfig has correct defaults."""
        config = PingConfig()
        assert config.interval_s == 1.0
        assert config.timeout_s == 5.0
        assert config.count == 0
        assert config.size == 16
        assert config.privileged is False
        assert config.record_rtts is True
        assert config.source is None
        assert config.network == "ip"

    def test_validate_returns_self(self) -> None:
        config = PingConfig()
        assert config.validate() is config

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"size": 15},
            {"size": 70000},
            {"interval_s": -0.1},
            {"count": -1},
            {"timeout_s": 0},
            {"network": "ipx"},
        ],
    )
    def test_invalid(self, kwargs: dict) -> None:
        """Test each out-of-range field is rejected."""
        with pytest.raises(ConfigError):
            PingConfig(**kwargs).validate()

    def test_unbounded_timeout_and_zero_interval(self) -> None:
        PingConfig(timeout_s=None, interval_s=0).validate()


@pytest.mark.unit
class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("500ms", 0.5),
            ("2s", 2.0),
            ("1.5", 1.5),
            ("1m", 60.0),
            (" 250 ms ", 0.25),
            (".5s", 0.5),
        ],
    )
    def test_valid(self, text: str, expected: float) -> None:
        assert parse_duration(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", ["", "fast", "-1s", "10h", "1..5"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ConfigError):
            parse_duration(text)


@pytest.mark.unit
class TestApplyEnv:
    """Tests for PING_* environment overrides."""

    def test_no_overrides(self) -> None:
        config = PingConfig(count=3)
        assert apply_env(config, {}) == config

    def test_all_overrides(self) -> None:
        """Test every supported variable is applied with its unit."""
        env = {
            "PING_INTERVAL_MS": "250",
            "PING_TIMEOUT_MS": "3000",
            "PING_COUNT": "7",
            "PING_SIZE": "64",
            "PING_PRIVILEGED": "yes",
        }
        config = apply_env(PingConfig(), env)
        assert config.interval_s == pytest.approx(0.25)
        assert config.timeout_s == pytest.approx(3.0)
        assert config.count == 7
        assert config.size == 64
        assert config.privileged is True

    def test_original_is_unchanged(self) -> None:
        config = PingConfig()
        apply_env(config, {"PING_COUNT": "9"})
        assert config.count == 0

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PING_COUNT", "4")
        assert apply_env(PingConfig()).count == 4

    def test_bad_integer(self) -> None:
        with pytest.raises(ConfigError, match="PING_COUNT"):
            apply_env(PingConfig(), {"PING_COUNT": "many"})

    def test_bad_boolean(self) -> None:
        with pytest.raises(ConfigError, match="PING_PRIVILEGED"):
            apply_env(PingConfig(), {"PING_PRIVILEGED": "maybe"})


@pytest.mark.unit
class TestLoadConfig:
    """Tests for YAML configuration files."""

    def test_full_file(self, tmp_path: Path) -> None:
        """Test all keys are read, with durations in milliseconds."""
        path = _write(
            tmp_path,
            "host: www.github.com\n"
            "interval: 500\n"
            "timeout: 10000\n"
            "count: 5\n"
            "size: 32\n"
            "privileged: true\n"
            "record_rtts: false\n"
            "source: 192.0.2.1\n"
            "network: ip4\n",
        )
        host, config = load_config(path)
        assert host == "www.github.com"
        assert config == PingConfig(
            interval_s=0.5,
            timeout_s=10.0,
            count=5,
            size=32,
            privileged=True,
            record_rtts=False,
            source="192.0.2.1",
            network="ip4",
        )

    def test_host_only(self, tmp_path: Path) -> None:
        host, config = load_config(_write(tmp_path, "host: \"::1\"\n"))
        assert host == "::1"
        assert config == PingConfig()

    def test_null_timeout_means_unbounded(self, tmp_path: Path) -> None:
        _, config = load_config(_write(tmp_path, "host: localhost\ntimeout: null\n"))
        assert config.timeout_s is None

    def test_keys_are_case_insensitive(self, tmp_path: Path) -> None:
        _, config = load_config(_write(tmp_path, "host: localhost\nCount: 2\n"))
        assert config.count == 2

    def test_host_key_is_case_insensitive(self, tmp_path: Path) -> None:
        host, config = load_config(_write(tmp_path, "Host: example.com\nCOUNT: 3\n"))
        assert host == "example.com"
        assert config.count == 3

    def test_duplicate_keys_after_normalising(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Duplicate"):
            load_config(_write(tmp_path, "host: localhost\ncount: 1\nCount: 2\n"))

    def test_missing_host(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="host"):
            load_config(_write(tmp_path, "count: 5\n"))

    def test_multiple_hosts_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="one host"):
            load_config(_write(tmp_path, "host:\n  - a.example\n  - b.example\n"))

    def test_unknown_key(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Unknown config key"):
            load_config(_write(tmp_path, "host: localhost\nflood: true\n"))

    def test_wrong_type(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="count"):
            load_config(_write(tmp_path, "host: localhost\ncount: five\n"))

    def test_bool_is_not_an_integer(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="count"):
            load_config(_write(tmp_path, "host: localhost\ncount: true\n"))

    def test_invalid_value(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="size"):
            load_config(_write(tmp_path, "host: localhost\nsize: 8\n"))

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_config(_write(tmp_path, "- localhost\n"))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(_write(tmp_path, "host: [unclosed\n"))

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "absent.yaml")
