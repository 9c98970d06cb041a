"""Configuration file loading and validation."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from .identity import DEFAULT_AUDIENCE
from .policy import TriggerPolicy, TrustPolicy

CONFIG_DIR = ".publishing"
CONFIG_FILE = "config.yaml"

DEFAULTS: Dict[str, Any] = {
    "registry": {
        "api_url": "https://api.cloudsmith.io",
        "upload_url": "https://upload.cloudsmith.io",
        "namespace": "",
        "repository": "",
        "service_slug": "",
        "format": "python",
        "republish": True,
        "verify_identity": True,
        "timeout": 30,
    },
    "oidc": {
        "audience": DEFAULT_AUDIENCE,
        "expected_claims": {},
    },
    "trigger": {
        "events": ["push"],
        "branches": ["main"],
    },
    "build": {
        "project_dir": ".",
        "output_dir": "dist",
        "artifact_pattern": "*.tar.gz",
        "distributions": ["sdist"],
    },
    "toolchain": {
        "python_version": None,
        "install_build": True,
    },
}

# Environment variable -> (section, key)
ENVIRONMENT_OVERRIDES = {
    "CLOUDSMITH_NAMESPACE": ("registry", "namespace"),
    "CLOUDSMITH_REPO": ("registry", "repository"),
    "CLOUDSMITH_REPOSITORY": ("registry", "repository"),
    "CLOUDSMITH_SERVICE_SLUG": ("registry", "service_slug"),
    "CLOUDSMITH_API_URL": ("registry", "api_url"),
    "CLOUDSMITH_UPLOAD_URL": ("registry", "upload_url"),
    "PUBLISHER_OIDC_AUDIENCE": ("oidc", "audience"),
}

VALID_DISTRIBUTIONS = ("sdist", "wheel")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class PublishConfig:
    """Configuration for publish runs."""

    def __init__(self, data: Dict[str, Any]):
        """
        Initialize configuration from dictionary.

        Args:
            data: Configuration dictionary from YAML; missing keys take defaults
        """
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")
        self.data = _merge(DEFAULTS, data)
        self._validate()

    def _validate(self) -> None:
        """Validate configuration schema."""
        for section in DEFAULTS:
            if not isinstance(self.data[section], dict):
                raise ConfigError(f"{section} must be a dictionary")

        registry = self.data["registry"]
        for key in ("republish", "verify_identity"):
            if not isinstance(registry[key], bool):
                raise ConfigError(f"registry.{key} must be boolean")
        for key in ("api_url", "upload_url", "namespace", "repository", "service_slug", "format"):
            if not isinstance(registry[key], str):
                raise ConfigError(f"registry.{key} must be a string")
        timeout = registry["timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError("registry.timeout must be a positive number")

        oidc = self.data["oidc"]
        if not isinstance(oidc["audience"], str) or not oidc["audience"]:
            raise ConfigError("oidc.audience must be a non-empty string")
        if not isinstance(oidc["expected_claims"], dict):
            raise ConfigError("oidc.expected_claims must be a dictionary")

        trigger = self.data["trigger"]
        for key in ("events", "branches"):
            if not isinstance(trigger[key], list) or not trigger[key]:
                raise ConfigError(f"trigger.{key} must be a non-empty list")

        build = self.data["build"]
        for key in ("project_dir", "output_dir"):
            if not isinstance(build[key], str) or not build[key].strip():
                raise ConfigError(f"build.{key} must be a non-empty string")
        output_dir = Path(build["output_dir"])
        # The output directory is emptied before every build
        if output_dir.is_absolute() or output_dir == Path(".") or ".." in output_dir.parts:
            raise ConfigError(
                "build.output_dir must be a subdirectory of build.project_dir"
            )
        if not isinstance(build["artifact_pattern"], str) or not build["artifact_pattern"]:
            raise ConfigError("build.artifact_pattern must be a non-empty string")
        if "/" in build["artifact_pattern"]:
            raise ConfigError(
                "build.artifact_pattern matches file names; set build.output_dir for the directory"
            )
        distributions = build["distributions"]
        if not isinstance(distributions, list) or not distributions:
            raise ConfigError("build.distributions must be a non-empty list")
        for idx, dist in enumerate(distributions):
            if dist not in VALID_DISTRIBUTIONS:
                raise ConfigError(
                    f"build.distributions[{idx}] must be one of {', '.join(VALID_DISTRIBUTIONS)}"
                )

        toolchain = self.data["toolchain"]
        version = toolchain["python_version"]
        # Unquoted YAML 3.10 parses as the float 3.1
        if version is not None and not isinstance(version, str):
            raise ConfigError("toolchain.python_version must be a quoted string")
        if not isinstance(toolchain["install_build"], bool):
            raise ConfigError("toolchain.install_build must be boolean")

    @property
    def registry(self) -> Dict[str, Any]:
        return self.data["registry"]

    @property
    def oidc(self) -> Dict[str, Any]:
        return self.data["oidc"]

    @property
    def build(self) -> Dict[str, Any]:
        return self.data["build"]

    @property
    def toolchain(self) -> Dict[str, Any]:
        return self.data["toolchain"]

    def get_trigger_policy(self) -> TriggerPolicy:
        """Get TriggerPolicy from configuration."""
        trigger = self.data["trigger"]
        return TriggerPolicy(
            events=[str(e) for e in trigger["events"]],
            branches=[str(b) for b in trigger["branches"]],
        )

    def get_trust_policy(self) -> TrustPolicy:
        """Get TrustPolicy from configured expected claims."""
        return TrustPolicy(self.oidc["expected_claims"])

    def missing_registry_identifiers(self) -> List[str]:
        """Names of the registry identifiers that are not configured."""
        return [
            key
            for key in ("namespace", "repository", "service_slug")
            if not self.registry[key]
        ]

    def require_registry_identifiers(self) -> None:
        """
        Ensure namespace, repository and service slug are set.

        Raises:
            ConfigError: Naming every missing identifier
        """
        missing = self.missing_registry_identifiers()
        if missing:
            raise ConfigError(
                "Missing registry identifiers: "
                + ", ".join(f"registry.{key}" for key in missing)
                + " (set them in the config file or via CLOUDSMITH_* variables)"
            )

    def merge_with_cli_args(self, **overrides: Any) -> "PublishConfig":
        """
        Merge configuration with CLI arguments.
        CLI arguments take precedence over config file.

        Args:
            **overrides: "section.key" style names with underscores for dots,
                e.g. registry_namespace="acme"; None values are ignored

        Returns:
            New PublishConfig with merged values
        """
        merged = copy.deepcopy(self.data)
        for name, value in overrides.items():
            if value is None:
                continue
            section, _, key = name.partition("_")
            if section not in merged or not key:
                raise ConfigError(f"Unknown option: {name}")
            merged[section][key] = value
        return PublishConfig(merged)

    def apply_environment_overrides(self) -> "PublishConfig":
        """
        Apply environment variable overrides.

        Environment variables:
        - CLOUDSMITH_NAMESPACE: Registry organization slug
        - CLOUDSMITH_REPOSITORY / CLOUDSMITH_REPO: Registry repository slug
        - CLOUDSMITH_SERVICE_SLUG: Service account slug
        - CLOUDSMITH_API_URL / CLOUDSMITH_UPLOAD_URL: Registry endpoints
        - PUBLISHER_OIDC_AUDIENCE: Identity token audience

        Returns:
            New PublishConfig with environment overrides applied
        """
        merged = copy.deepcopy(self.data)
        for env_name, (section, key) in ENVIRONMENT_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                merged[section][key] = value
        return PublishConfig(merged)


def load_config(config_path: str) -> PublishConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        PublishConfig instance

    Raises:
        ConfigError: If config file is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}")

    if data is None:
        data = {}

    return PublishConfig(data)


def find_default_config(start: Optional[Path] = None) -> Optional[Path]:
    """
    Find default configuration file.

    Searches for .publishing/config.yaml in:
    1. Current directory
    2. Parent directories up to git root
    3. Home directory

    Returns:
        Path to config file, or None if not found
    """
    current = Path(start) if start else Path.cwd()
    while True:
        config_path = current / CONFIG_DIR / CONFIG_FILE
        if config_path.exists():
            return config_path

        if (current / ".git").exists():
            break

        parent = current.parent
        if parent == current:
            break
        current = parent

    home_config = Path.home() / CONFIG_DIR / CONFIG_FILE
    if home_config.exists():
        return home_config

    return None


def load_default_config() -> Optional[PublishConfig]:
    """
    Load configuration from default location.

    Returns:
        PublishConfig if found, None otherwise
    """
    config_path = find_default_config()
    if config_path:
        return load_config(str(config_path))
    return None
