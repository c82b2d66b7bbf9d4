"""
Configuration management for DynDNS Gateway.

Settings come from a TOML file, environment variables and command-line
arguments, merged in this order of priority (high to low):
1. Command-line arguments
2. Environment variables
3. Configuration file (`--config`, else `config.toml` if present)
4. Default values
"""

from __future__ import annotations

import argparse
import copy
import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError, model_validator
from pydantic_core import PydanticCustomError

from dyndns_gateway.models import ReadErrorPolicy, ZoneProvider

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any, Final, Self


# Environment variables and the (section, key) they set
ENV_OVERRIDES: Final[dict[str, tuple[str, str]]] = {
    "DYNDNS_USER": ("auth", "username"),
    "DYNDNS_PASS": ("auth", "password"),
    "ZONE": ("zone", "name"),
    "GOOGLE_CLOUD_PROJECT": ("zone", "project"),
    "DYNDNS_ZONE_TOKEN": ("zone", "api_token"),
}

# Command-line argument destinations and the (section, key) they set
CLI_OVERRIDES: Final[dict[str, tuple[str, str]]] = {
    "host": ("server", "host"),
    "port": ("server", "port"),
    "auth_enabled": ("auth", "enabled"),
    "username": ("auth", "username"),
    "password": ("auth", "password"),
    "zone": ("zone", "name"),
    "zone_provider": ("zone", "provider"),
    "project": ("zone", "project"),
    "read_errors": ("reconcile", "read_errors"),
    "log_level": ("logging", "level"),
    "log_file_enabled": ("logging", "file_enabled"),
    "log_file_path": ("logging", "file_path"),
    "health_enabled": ("health", "enabled"),
}

# Readable names for pydantic error types
EXPECTED_TYPES: Final[dict[str, str]] = {
    "int_type": "int",
    "int_parsing": "int",
    "bool_type": "bool",
    "bool_parsing": "bool",
    "string_type": "str",
    "enum": "one of the allowed values",
}


class ConfigValidationError(Exception):
    """
    Raised when the configuration cannot be read, is invalid or incomplete.

    Attributes
    ----------
    config_path : Path | None
        Path to the configuration file involved, if any.
    """

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        self.config_path = config_path
        super().__init__(message)


# Configuration models (Pydantic with type validation and coercion)


class ServerConfig(BaseModel):
    """
    Server configuration.

    Attributes
    ----------
    host : str
        Host address to bind to.
    port : int
        Port number to listen on.
    """

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 38080


class AuthConfig(BaseModel):
    """
    Basic authentication configuration.

    Attributes
    ----------
    enabled : bool
        Whether authentication is enabled.
    username : str
        The dyndns2 username clients must send.
    password : str
        The dyndns2 password clients must send.
    """

    enabled: bool = True
    username: str = ""
    password: str = ""


class ZoneConfig(BaseModel):
    """
    Managed zone configuration.

    Attributes
    ----------
    provider : ZoneProvider
        The DNS backend holding the zone.
    name : str
        The zone: managed zone name for Cloud DNS, domain for CloudFlare.
    project : str | None
        Google Cloud project ID; taken from the credentials if unset.
    api_token : str | None
        API token (CloudFlare) or access token (Cloud DNS). For Cloud DNS
        Application Default Credentials are used if unset.
    """

    provider: ZoneProvider = ZoneProvider.CLOUDDNS
    name: str = ""
    project: str | None = None
    api_token: str | None = None


class ReconcileConfig(BaseModel):
    """
    Reconciliation configuration.

    Attributes
    ----------
    read_errors : ReadErrorPolicy
        Whether a failed record lookup counts as an absent record
        or aborts the request.
    """

    read_errors: ReadErrorPolicy = ReadErrorPolicy.ABSENT


class MethodsConfig(BaseModel):
    """
    HTTP methods configuration.

    Attributes
    ----------
    get_enabled : bool
        Whether GET method is enabled.
    post_enabled : bool
        Whether POST method is enabled.
    """

    get_enabled: bool = True
    post_enabled: bool = True

    @model_validator(mode="after")
    def check_at_least_one_method_enabled(self) -> Self:
        """
        Validate that at least one method is enabled.

        Returns
        -------
        Self
            The validated model.

        Raises
        ------
        PydanticCustomError
            If both GET and POST methods are disabled.
        """
        if not self.get_enabled and not self.post_enabled:
            err_type = "methods_config_error"
            raise PydanticCustomError(
                err_type,
                "At least one HTTP method must be enabled (GET or POST)",
            )
        return self


class LoggingConfig(BaseModel):
    """
    Logging configuration.

    Attributes
    ----------
    level : str
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    file_enabled : bool
        Whether to log to file.
    file_path : str
        Path to the log file.
    """

    level: str = "INFO"
    file_enabled: bool = False
    file_path: str = "/var/log/dyndns-gateway.log"

    @property
    def file_path_as_path(self) -> Path:
        """
        Get the log file path as a Path object.

        Returns
        -------
        Path
            The resolved log file path.
        """
        return Path(self.file_path)


class HealthConfig(BaseModel):
    """
    Health endpoint configuration.

    Attributes
    ----------
    enabled : bool
        Whether the /health endpoint is enabled.
    """

    enabled: bool = False


class Config(BaseModel):
    """
    Application configuration.

    Attributes
    ----------
    server : ServerConfig
        Server configuration.
    auth : AuthConfig
        Authentication configuration.
    zone : ZoneConfig
        Managed zone configuration.
    reconcile : ReconcileConfig
        Reconciliation configuration.
    methods : MethodsConfig
        HTTP methods configuration.
    logging : LoggingConfig
        Logging configuration.
    health : HealthConfig
        Health endpoint configuration.
    """

    server: ServerConfig = ServerConfig()
    auth: AuthConfig = AuthConfig()
    zone: ZoneConfig = ZoneConfig()
    reconcile: ReconcileConfig = ReconcileConfig()
    methods: MethodsConfig = MethodsConfig()
    logging: LoggingConfig = LoggingConfig()
    health: HealthConfig = HealthConfig()




def _format_validation_errors(
    error: ValidationError,
    config_path: Path | None,
) -> str:
    """
    Format Pydantic validation errors into human-readable messages.

    Parameters
    ----------
    error : ValidationError
        Pydantic validation error.
    config_path : Path | None
        Path to the configuration file.

    Returns
    -------
    str
        One header line, then one line per invalid field.
    """
    lines = [
        f'Configuration error in "{config_path}":'
        if config_path
        else "Configuration error:",
    ]

    for err in error.errors():
        field_path = ".".join(str(loc) for loc in err["loc"])
        if err["type"] == "methods_config_error":
            lines.append(f"  [{field_path}]: {err['msg']}.")
            continue

        value = err["input"]
        value_repr = f'"{value}"' if isinstance(value, str) else repr(value)
        expected = EXPECTED_TYPES.get(err["type"], err["type"])
        lines.append(
            f"  [{field_path}]: Expected {expected}, got {type(value).__name__} "
            f"(value: {value_repr}). {err['msg']}.",
        )

    return "\n".join(lines)


def validate_config_dict(
    data: dict[str, Any],
    config_path: Path | None = None,
) -> None:
    """
    Validate configuration dictionary using Pydantic.

    Parameters
    ----------
    data : dict[str, Any]
        Configuration dictionary to validate.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Raises
    ------
    ConfigValidationError
        If validation fails.
    """
    try:
        Config(**data)
    except ValidationError as e:
        msg = _format_validation_errors(e, config_path)
        raise ConfigValidationError(msg, config_path) from e


def check_required_settings(config: Config, config_path: Path | None = None) -> None:
    """
    Check the settings the gateway cannot start without.

    Parameters
    ----------
    config : Config
        The validated configuration.
    config_path : Path | None, optional
        Path to the configuration file (for error messages).

    Raises
    ------
    ConfigValidationError
        If credentials or the zone are missing.
    """
    if config.auth.enabled and (not config.auth.username or not config.auth.password):
        msg = (
            "Credentials are not set up correctly. Please set auth.username and "
            "auth.password, or the environment variables DYNDNS_USER and DYNDNS_PASS."
        )
        raise ConfigValidationError(msg, config_path)

    if not config.zone.name:
        msg = "No zone specified. Please set zone.name or the environment variable ZONE."
        raise ConfigValidationError(msg, config_path)

    if config.zone.provider == ZoneProvider.CLOUDFLARE and not config.zone.api_token:
        msg = (
            "The cloudflare zone provider requires an API token. Please set "
            "zone.api_token or the environment variable DYNDNS_ZONE_TOKEN."
        )
        raise ConfigValidationError(msg, config_path)


def load_config_from_file(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a TOML file.

    Raises
    ------
    ConfigValidationError
        If the file does not exist or is not valid TOML.
    """
    try:
        with config_path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        msg = f'Configuration file not found: "{config_path}".'
        raise ConfigValidationError(msg, config_path) from e
    except tomllib.TOMLDecodeError as e:
        msg = f'Failed to parse configuration file "{config_path}": {e}.'
        raise ConfigValidationError(msg, config_path) from e


def _nested(
    table: Mapping[str, tuple[str, str]],
    values: Mapping[str, Any],
) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for source, (section, key) in table.items():
        value = values.get(source)
        if value is not None and value != "":
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """
    Collect configuration overrides from environment variables.

    Empty variables are ignored.

    Parameters
    ----------
    environ : Mapping[str, str] | None, optional
        Environment to read. If None, uses os.environ.

    Returns
    -------
    dict[str, Any]
        Nested configuration dictionary with the variables that are set.
    """
    return _nested(ENV_OVERRIDES, os.environ if environ is None else environ)


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Parameters
    ----------
    base : dict[str, Any]
        Base configuration; left unmodified.
    override : dict[str, Any]
        Override configuration (takes precedence).

    Returns
    -------
    dict[str, Any]
        Merged configuration.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_config(result[key], value)
        else:
            result[key] = value
    return result


def parse_methods_str(value: str) -> MethodsConfig:
    """
    Parse the comma-separated `--methods` value (e.g. "get,post").

    Raises
    ------
    argparse.ArgumentTypeError
        If the value is empty or names an unknown method.
    """
    methods = {m.strip().lower() for m in value.split(",") if m.strip()}
    if not methods:
        msg = "No methods specified."
        raise argparse.ArgumentTypeError(msg)

    unknown = sorted(methods - {"get", "post"})
    if unknown:
        msg = f'Invalid method: "{unknown[0]}".'
        raise argparse.ArgumentTypeError(msg)

    return MethodsConfig(get_enabled="get" in methods, post_enabled="post" in methods)


def dict_to_config(data: dict[str, Any]) -> Config:
    """
    Convert a merged configuration dictionary to a Config object.

    A leading "~" in the log file path is expanded.
    """
    file_path = data.get("logging", {}).get("file_path")
    if file_path is not None:
        data = merge_config(
            data,
            {"logging": {"file_path": str(Path(file_path).expanduser())}},
        )
    return Config.model_validate(data)


def _add_toggle(
    parser: argparse.ArgumentParser,
    name: str,
    dest: str,
    what: str,
) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        f"--{name}-enabled",
        action="store_true",
        dest=dest,
        default=None,
        help=f"Enable {what}",
    )
    group.add_argument(
        f"--{name}-disabled",
        action="store_false",
        dest=dest,
        default=None,
        help=f"Disable {what}",
    )


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Every option defaults to None so that only the given ones override
    the environment and the configuration file.

    Parameters
    ----------
    args : list[str] | None, optional
        Command-line arguments. If None, uses sys.argv.

    Returns
    -------
    argparse.Namespace
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="dyndns-gateway",
        description="DynDNS Gateway - A dyndns2 compatible update service",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file (default: config.toml)",
    )

    server = parser.add_argument_group("server")
    server.add_argument("--host", help="Host address to bind to")
    server.add_argument("--port", type=int, help="Port number to listen on")

    auth = parser.add_argument_group("authentication")
    _add_toggle(parser, "auth", "auth_enabled", "basic authentication")
    auth.add_argument("--username", help="dyndns2 username")
    auth.add_argument("--password", help="dyndns2 password")

    zone = parser.add_argument_group("zone")
    zone.add_argument(
        "--zone",
        help="Managed zone (Cloud DNS zone name or CloudFlare domain)",
    )
    zone.add_argument(
        "--zone-provider",
        type=ZoneProvider,
        choices=list(ZoneProvider),
        help="DNS backend holding the zone",
    )
    zone.add_argument("--project", help="Google Cloud project ID (Cloud DNS only)")
    zone.add_argument(
        "--read-errors",
        type=ReadErrorPolicy,
        choices=list(ReadErrorPolicy),
        help="Treat failed record lookups as absent records or as errors",
    )

    http = parser.add_argument_group("http")
    http.add_argument(
        "--methods",
        type=parse_methods_str,
        help="Enabled HTTP methods (comma-separated, e.g., 'get,post')",
    )
    _add_toggle(parser, "health", "health_enabled", '"/health" endpoint')

    log = parser.add_argument_group("logging")
    log.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level",
    )
    _add_toggle(parser, "log-file", "log_file_enabled", "logging to file")
    log.add_argument("--log-file-path", help="Path to the log file")

    return parser.parse_args(args)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Collect configuration overrides from the arguments that were given."""
    overrides = _nested(CLI_OVERRIDES, vars(args))
    if args.methods is not None:
        overrides["methods"] = args.methods.model_dump()
    return overrides


def load_config(
    args: argparse.Namespace | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Load configuration from file, environment and command-line arguments.

    Parameters
    ----------
    args : argparse.Namespace | None, optional
        Parsed command-line arguments. If None, sys.argv is parsed.
    environ : Mapping[str, str] | None, optional
        Environment to read. If None, uses os.environ.

    Returns
    -------
    Config
        Loaded configuration.

    Raises
    ------
    ConfigValidationError
        If the configuration file cannot be read, or the merged
        configuration is invalid or incomplete.
    """
    if args is None:
        args = parse_args()

    config_path: Path | None = args.config
    if config_path is not None:
        config_path = config_path.expanduser()
    elif Path("config.toml").exists():
        config_path = Path("config.toml")

    config_dict = load_config_from_file(config_path) if config_path else {}
    config_dict = merge_config(config_dict, load_env_overrides(environ))
    config_dict = merge_config(config_dict, _cli_overrides(args))

    validate_config_dict(config_dict, config_path)
    config = dict_to_config(config_dict)
    check_required_settings(config, config_path)
    return config
