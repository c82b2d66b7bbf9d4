"""Tests for configuration module."""

from __future__ import annotations

import argparse
import tempfile
from pathlib import Path

import pytest

from dyndns_gateway.config import (
    AuthConfig,
    Config,
    ConfigValidationError,
    HealthConfig,
    LoggingConfig,
    MethodsConfig,
    ReconcileConfig,
    ServerConfig,
    ZoneConfig,
    check_required_settings,
    dict_to_config,
    load_config,
    load_config_from_file,
    load_env_overrides,
    merge_config,
    parse_args,
    parse_methods_str,
    validate_config_dict,
)
from dyndns_gateway.models import ReadErrorPolicy, ZoneProvider

REQUIRED_ARGS = ["--username", "user", "--password", "secret", "--zone", "my-zone"]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Run without a config.toml in the working directory or env overrides."""
    monkeypatch.chdir(tmp_path)
    for variable in (
        "DYNDNS_USER",
        "DYNDNS_PASS",
        "ZONE",
        "GOOGLE_CLOUD_PROJECT",
        "DYNDNS_ZONE_TOKEN",
    ):
        monkeypatch.delenv(variable, raising=False)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_default_values(self):
        config = ServerConfig()
        assert config.host == "0.0.0.0"
        assert config.port == 38080


class TestAuthConfig:
    """Tests for AuthConfig."""

    def test_default_values(self):
        config = AuthConfig()
        assert config.enabled is True
        assert config.username == ""
        assert config.password == ""


class TestZoneConfig:
    """Tests for ZoneConfig."""

    def test_default_values(self):
        config = ZoneConfig()
        assert config.provider == ZoneProvider.CLOUDDNS
        assert config.name == ""
        assert config.project is None
        assert config.api_token is None

    def test_provider_from_string(self):
        config = ZoneConfig(provider="cloudflare", name="example.com")
        assert config.provider == ZoneProvider.CLOUDFLARE


class TestReconcileConfig:
    """Tests for ReconcileConfig."""

    def test_default_values(self):
        assert ReconcileConfig().read_errors == ReadErrorPolicy.ABSENT


class TestMethodsConfig:
    """Tests for MethodsConfig."""

    def test_default_values(self):
        config = MethodsConfig()
        assert config.get_enabled is True
        assert config.post_enabled is True


class TestHealthConfig:
    """Tests for HealthConfig."""

    def test_default_values(self):
        assert HealthConfig().enabled is False


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is False
        assert config.file_path == "/var/log/dyndns-gateway.log"


class TestMergeConfig:
    """Tests for merge_config function."""

    def test_simple_merge(self):
        result = merge_config({"a": 1, "b": 2}, {"b": 3, "c": 4})
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        base = {"auth": {"username": "file-user", "password": "file-pass"}}
        override = {"auth": {"password": "env-pass"}}
        result = merge_config(base, override)
        assert result == {"auth": {"username": "file-user", "password": "env-pass"}}
        assert base["auth"]["password"] == "file-pass"


class TestEnvOverrides:
    """Tests for load_env_overrides function."""

    def test_all_variables(self):
        environ = {
            "DYNDNS_USER": "user",
            "DYNDNS_PASS": "secret",
            "ZONE": "my-zone",
            "GOOGLE_CLOUD_PROJECT": "my-project",
            "DYNDNS_ZONE_TOKEN": "token",
            "UNRELATED": "x",
        }
        assert load_env_overrides(environ) == {
            "auth": {"username": "user", "password": "secret"},
            "zone": {"name": "my-zone", "project": "my-project", "api_token": "token"},
        }

    def test_empty_values_are_ignored(self):
        assert load_env_overrides({"DYNDNS_USER": "", "ZONE": ""}) == {}


class TestDictToConfig:
    """Tests for dict_to_config function."""

    def test_empty_dict(self):
        config = dict_to_config({})
        assert config.server.port == 38080
        assert config.auth.enabled is True
        assert config.zone.provider == ZoneProvider.CLOUDDNS

    def test_full_dict(self):
        data = {
            "server": {"host": "127.0.0.1", "port": 9000},
            "auth": {"username": "user", "password": "secret"},
            "zone": {"provider": "cloudflare", "name": "example.com", "api_token": "t"},
            "reconcile": {"read_errors": "fail"},
            "logging": {"level": "DEBUG", "file_path": "~/dyndns.log"},
        }
        config = dict_to_config(data)
        assert config.server.host == "127.0.0.1"
        assert config.auth.username == "user"
        assert config.zone.provider == ZoneProvider.CLOUDFLARE
        assert config.reconcile.read_errors == ReadErrorPolicy.FAIL
        assert config.logging.file_path == str(Path("~/dyndns.log").expanduser())


class TestLoadConfigFromFile:
    """Tests for load_config_from_file function."""

    def test_load_toml_file(self):
        toml_content = """
[auth]
username = "user"
password = "secret"

[zone]
provider = "clouddns"
name = "my-zone"
project = "my-project"
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write(toml_content)
            f.flush()
            config_path = Path(f.name)

        try:
            data = load_config_from_file(config_path)
            assert data["auth"]["username"] == "user"
            assert data["zone"]["project"] == "my-project"
        finally:
            config_path.unlink()


class TestParseMethodsStr:
    """Tests for parse_methods_str function."""

    def test_parse_valid_methods(self):
        config = parse_methods_str("get,post")
        assert config.get_enabled
        assert config.post_enabled

        config = parse_methods_str("GET")
        assert config.get_enabled
        assert not config.post_enabled

    def test_parse_invalid_methods(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_methods_str("get,invalid")

    def test_parse_empty(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_methods_str("")


class TestParseArgs:
    """Tests for parse_args function."""

    def test_default_args(self):
        args = parse_args([])
        assert args.config is None
        assert args.username is None
        assert args.password is None
        assert args.zone is None
        assert args.zone_provider is None
        assert args.read_errors is None
        assert args.auth_enabled is None

    def test_zone_args(self):
        args = parse_args(
            ["--zone", "example.com", "--zone-provider", "cloudflare", "--project", "p"],
        )
        assert args.zone == "example.com"
        assert args.zone_provider == ZoneProvider.CLOUDFLARE
        assert args.project == "p"

    def test_invalid_zone_provider(self):
        with pytest.raises(SystemExit):
            parse_args(["--zone-provider", "route53"])

    def test_read_errors(self):
        args = parse_args(["--read-errors", "fail"])
        assert args.read_errors == ReadErrorPolicy.FAIL

    def test_auth_enabled_disabled(self):
        assert parse_args(["--auth-enabled"]).auth_enabled is True
        assert parse_args(["--auth-disabled"]).auth_enabled is False


class TestLoadConfig:
    """Tests for load_config priorities and required settings."""

    def test_cli_arguments(self):
        config = load_config(parse_args(REQUIRED_ARGS), environ={})
        assert config.auth.username == "user"
        assert config.auth.password == "secret"
        assert config.zone.name == "my-zone"

    def test_environment(self):
        environ = {"DYNDNS_USER": "user", "DYNDNS_PASS": "secret", "ZONE": "env-zone"}
        config = load_config(parse_args([]), environ=environ)
        assert config.zone.name == "env-zone"

    def test_cli_overrides_environment(self):
        environ = {"DYNDNS_USER": "user", "DYNDNS_PASS": "secret", "ZONE": "env-zone"}
        config = load_config(parse_args(["--zone", "cli-zone"]), environ=environ)
        assert config.zone.name == "cli-zone"

    def test_environment_overrides_file(self, tmp_path):
        config_path = tmp_path / "config.toml"
        config_path.write_text(
            '[auth]\nusername = "file-user"\npassword = "file-pass"\n'
            '[zone]\nname = "file-zone"\n',
        )
        config = load_config(
            parse_args(["--config", str(config_path)]),
            environ={"DYNDNS_PASS": "env-pass"},
        )
        assert config.auth.username == "file-user"
        assert config.auth.password == "env-pass"
        assert config.zone.name == "file-zone"

    def test_default_config_file(self, tmp_path):
        (tmp_path / "config.toml").write_text(
            '[auth]\nenabled = false\n[zone]\nname = "default-zone"\n',
        )
        config = load_config(parse_args([]), environ={})
        assert config.auth.enabled is False
        assert config.zone.name == "default-zone"

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            load_config(parse_args(["--config", str(tmp_path / "nope.toml")]), environ={})

    def test_invalid_toml(self, tmp_path):
        config_path = tmp_path / "config.toml"
        config_path.write_text("[zone\nname = ")
        with pytest.raises(ConfigValidationError, match="Failed to parse") as exc_info:
            load_config(parse_args([]), environ={})
        assert exc_info.value.config_path == Path("config.toml")

    def test_missing_credentials(self):
        with pytest.raises(ConfigValidationError, match="Credentials"):
            load_config(parse_args(["--zone", "my-zone"]), environ={})

    def test_auth_disabled_needs_no_credentials(self):
        config = load_config(
            parse_args(["--auth-disabled", "--zone", "my-zone"]),
            environ={},
        )
        assert config.auth.enabled is False

    def test_missing_zone(self):
        with pytest.raises(ConfigValidationError, match="No zone specified"):
            load_config(parse_args(["--username", "u", "--password", "p"]), environ={})

    def test_cloudflare_requires_token(self):
        with pytest.raises(ConfigValidationError, match="API token"):
            load_config(
                parse_args([*REQUIRED_ARGS, "--zone-provider", "cloudflare"]),
                environ={},
            )

    def test_overrides(self):
        args = parse_args(
            [
                *REQUIRED_ARGS,
                "--methods",
                "post",
                "--read-errors",
                "fail",
                "--log-file-enabled",
                "--log-file-path",
                "/tmp/cli.log",
            ],
        )
        config = load_config(args, environ={})
        assert config.methods.get_enabled is False
        assert config.methods.post_enabled is True
        assert config.reconcile.read_errors == ReadErrorPolicy.FAIL
        assert config.logging.file_enabled is True
        assert config.logging.file_path == str(Path("/tmp/cli.log"))


class TestConfigValidation:
    """Tests for configuration validation."""

    def test_invalid_port_type(self):
        data = {"server": {"port": "not_a_number"}}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_dict(data, Path("config.toml"))
        error_msg = str(exc_info.value)
        assert "server.port" in error_msg
        assert "int" in error_msg
        assert "not_a_number" in error_msg

    def test_invalid_zone_provider(self):
        data = {"zone": {"provider": "route53"}}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_dict(data)
        assert "zone.provider" in str(exc_info.value)

    def test_invalid_read_errors(self):
        data = {"reconcile": {"read_errors": "retry"}}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_dict(data)
        assert "reconcile.read_errors" in str(exc_info.value)

    def test_both_methods_disabled(self):
        data = {"methods": {"get_enabled": False, "post_enabled": False}}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_dict(data)
        assert "At least one HTTP method" in str(exc_info.value)

    def test_error_shows_config_path(self):
        data = {"server": {"port": "invalid"}}
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_dict(data, Path("/path/to/config.toml"))
        assert "/path/to/config.toml" in str(exc_info.value)

    def test_check_required_settings_passes(self):
        config = Config(
            auth=AuthConfig(username="u", password="p"),
            zone=ZoneConfig(name="z"),
        )
        check_required_settings(config)
