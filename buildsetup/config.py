"""Configuration loading for the build-setup declaration.

Secrets come from the environment first and the JSON config file second. The
file may also override the non-secret literals held in ``BuildSetupOptions``.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .schemas.secret import Secret
from .utils import fileio

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/build-setup.json")
CONFIG_PATH_ENV = "BUILD_SETUP_CONFIG"

GITHUB_TOKEN_KEY = "github-token"
PULUMI_ACCESS_TOKEN_KEY = "pulumi-access-token"
SECRET_ENV_VARS = {
    GITHUB_TOKEN_KEY: "GITHUB_TOKEN",
    PULUMI_ACCESS_TOKEN_KEY: "PULUMI_ACCESS_TOKEN",
}


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class BuildSetupOptions:
    stack_name: str = "build-setup-ci"
    repository_url: str = "https://github.com/danielrbradley/build-setup-example.git"
    branch: str = "master"
    webhook_event: str = "PUSH"
    build_image: str = "aws/codebuild/standard:3.0"
    compute_type: str = "BUILD_GENERAL1_SMALL"

    @property
    def head_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @classmethod
    def config_keys(cls) -> Dict[str, str]:
        """Map config file keys (kebab-case) to field names."""
        return {item.name.replace("_", "-"): item.name for item in fields(cls)}

    def with_overrides(self, payload: Mapping[str, Any]) -> "BuildSetupOptions":
        known = self.config_keys()
        updates: Dict[str, str] = {}
        for key, value in payload.items():
            if key in SECRET_ENV_VARS:
                continue
            if key not in known:
                raise ConfigurationError(f"Unknown configuration key '{key}'.")
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Configuration key '{key}' must be a non-empty string.")
            updates[known[key]] = value.strip()
        return replace(self, **updates)


@dataclass
class BuildSetupConfig:
    """Resolved configuration: secret values plus declaration options."""

    values: Dict[str, str] = field(default_factory=dict)
    options: BuildSetupOptions = field(default_factory=BuildSetupOptions)
    source: Optional[Path] = None

    def get_secret(self, key: str) -> Optional[Secret]:
        value = self.values.get(key)
        if value is None or not str(value).strip():
            return None
        return Secret(str(value))

    def require_secret(self, key: str) -> Secret:
        secret = self.get_secret(key)
        if secret is None:
            hint = f" (set {SECRET_ENV_VARS[key]} or add '{key}' to the config file)" if key in SECRET_ENV_VARS else ""
            raise ConfigurationError(f"Missing required secret configuration value '{key}'{hint}.")
        return secret

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any],
        *,
        environ: Optional[Mapping[str, str]] = None,
        source: Optional[Path] = None,
    ) -> "BuildSetupConfig":
        env = os.environ if environ is None else environ
        values: Dict[str, str] = {}
        for key, env_name in SECRET_ENV_VARS.items():
            from_env = env.get(env_name)
            if from_env:
                LOGGER.debug("Using %s from environment variable %s", key, env_name)
                values[key] = from_env
            elif payload.get(key) is not None:
                if not isinstance(payload[key], str):
                    raise ConfigurationError(f"Secret '{key}' must be a string.")
                values[key] = payload[key]
        options = BuildSetupOptions().with_overrides(payload)
        return cls(values=values, options=options, source=source)


def resolve_config_path(path: Optional[str] = None, *, environ: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if environ is None else environ
    return Path(path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def load_config(path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None) -> BuildSetupConfig:
    """Read the JSON config file (optional) and merge environment secrets over it."""
    config_path = path or resolve_config_path(environ=environ)
    try:
        payload = fileio.read_json(config_path)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Config file {config_path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {config_path}: {exc}") from exc

    if payload is None:
        LOGGER.debug("Config file %s not found; relying on environment.", config_path)
        payload = {}
    elif not isinstance(payload, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a JSON object.")
    else:
        LOGGER.debug("Loaded configuration from %s", config_path)

    return BuildSetupConfig.from_mapping(payload, environ=environ, source=config_path)


__all__ = [
    "BuildSetupConfig",
    "BuildSetupOptions",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "GITHUB_TOKEN_KEY",
    "PULUMI_ACCESS_TOKEN_KEY",
    "load_config",
    "resolve_config_path",
]
