"""Configuration loading for the S3 permission matrix tester.

Supports two configuration sources:
1. Environment variables (for CI/CD) - takes priority
2. config.json file (for local development)

Settings Environment Variables:
    S3PERM_ENDPOINT=https://s3.example.com
    S3PERM_REGION=us-east-1
    S3PERM_FORCE_PATH_STYLE=true
    S3PERM_TTL_HOURS=24
    S3PERM_KEY_PREFIX=permission-matrix
    S3PERM_TIMEOUT=30
    S3PERM_LOCAL_CHECKS=true

Profile Environment Variable Format:
    PROFILE_{NAME}=BucketName|Tier
    {NAME}_ACCESS_KEY=xxx
    {NAME}_SECRET_KEY=xxx
    {NAME}_ADMIN_ACCESS_KEY=xxx      (optional)
    {NAME}_ADMIN_SECRET_KEY=xxx      (optional)
    {NAME}_PERMISSIONS=read,write    (optional for known profile names)

Example:
    PROFILE_READ_WRITE=testdata-1|limited
    READ_WRITE_ACCESS_KEY=your-access-key
    READ_WRITE_SECRET_KEY=your-secret-key

config.json Format:
    {
        "settings": {"endpoint_url": "...", "region_name": "us-east-1"},
        "profiles": {
            "PUBLIC": {
                "tier": "public",
                "bucket_name": "testauto-1",
                "aws_access_key_id": "...",
                "aws_secret_access_key": "..."
            },
            "READ": {
                "tier": "limited",
                "bucket_name": "testdata-1",
                "aws_access_key_id": "...",
                "aws_secret_access_key": "...",
                "admin_access_key_id": "...",
                "admin_secret_access_key": "..."
            }
        }
    }
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from s3_permission_matrix.matrix import PERMISSION_PROFILES
from s3_permission_matrix.models import (
    BucketIdentity,
    BucketProfile,
    BucketTier,
    Credentials,
    PermissionSet,
)


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


DEFAULT_ENDPOINT = "https://s3.aiozstorage.network"
DEFAULT_REGION = "us-east-1"

# 12 MiB, so the large upload always needs more than one 5 MiB part
DEFAULT_LARGE_FILE_SIZE = 12 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    """Service-wide settings shared by every profile."""

    endpoint_url: Optional[str] = DEFAULT_ENDPOINT
    region_name: str = DEFAULT_REGION
    force_path_style: bool = True
    default_ttl_hours: int = 24
    key_prefix: str = "permission-matrix"
    timeout_seconds: float = 30.0
    large_file_size: int = DEFAULT_LARGE_FILE_SIZE
    local_checks: bool = True
    anonymous_probe: bool = False


# Required fields for a profile configuration
REQUIRED_FIELDS = [
    "bucket_name",
    "aws_access_key_id",
    "aws_secret_access_key",
]

# Environment variable -> (Settings field, converter)
SETTINGS_ENV = {
    "S3PERM_ENDPOINT": "endpoint_url",
    "S3PERM_REGION": "region_name",
    "S3PERM_FORCE_PATH_STYLE": "force_path_style",
    "S3PERM_TTL_HOURS": "default_ttl_hours",
    "S3PERM_KEY_PREFIX": "key_prefix",
    "S3PERM_TIMEOUT": "timeout_seconds",
    "S3PERM_LARGE_FILE_SIZE": "large_file_size",
    "S3PERM_LOCAL_CHECKS": "local_checks",
    "S3PERM_ANONYMOUS_PROBE": "anonymous_probe",
}


def parse_bool(value: Any) -> bool:
    """Parse a boolean from JSON or an environment string."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _coerce_settings(values: dict[str, Any]) -> dict[str, Any]:
    """Convert raw values to the types declared on ``Settings``."""
    types = {f.name: f.type for f in fields(Settings)}
    coerced: dict[str, Any] = {}

    for name, value in values.items():
        if name not in types:
            raise ConfigError(f"Unknown setting: {name}")

        declared = types[name]
        try:
            if declared in (bool, "bool"):
                coerced[name] = parse_bool(value)
            elif declared in (int, "int"):
                coerced[name] = int(value)
            elif declared in (float, "float"):
                coerced[name] = float(value)
            elif name == "endpoint_url":
                coerced[name] = value or None
            else:
                coerced[name] = str(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for setting '{name}': {value!r}") from e

    return coerced


def load_settings(
    data: Optional[dict[str, Any]] = None,
    environ: Optional[dict[str, str]] = None,
) -> Settings:
    """Build settings from defaults, the JSON ``settings`` block and the environment.

    Args:
        data: The ``settings`` object from config.json, if any.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Settings with environment values taking priority.
    """
    if environ is None:
        environ = dict(os.environ)

    values: dict[str, Any] = dict(data or {})
    for env_key, field_name in SETTINGS_ENV.items():
        if env_key in environ:
            values[field_name] = environ[env_key]

    return replace(Settings(), **_coerce_settings(values))


def _parse_tier(value: str, profile_name: str) -> BucketTier:
    try:
        return BucketTier(str(value).strip().lower())
    except ValueError as e:
        raise ConfigError(f"Invalid tier '{value}' for profile '{profile_name}'") from e


def _resolve_permissions(
    profile_name: str,
    tier: BucketTier,
    explicit: Any = None,
) -> PermissionSet:
    """Work out the declared permissions of a profile.

    Explicit permissions win. PUBLIC and PRIVATE tiers hold every permission.
    Otherwise the profile name must be one of the known matrix profiles.
    """
    if explicit is not None:
        try:
            if isinstance(explicit, dict):
                return PermissionSet(**{k: bool(v) for k, v in explicit.items()})
            if isinstance(explicit, str):
                explicit = [p for p in explicit.split(",") if p.strip()]
            return PermissionSet.from_names(explicit)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid permissions for profile '{profile_name}': {explicit!r}") from e

    if tier in (BucketTier.PUBLIC, BucketTier.PRIVATE):
        return PermissionSet.full()

    if profile_name in PERMISSION_PROFILES:
        return PERMISSION_PROFILES[profile_name]

    raise ConfigError(
        f"Profile '{profile_name}' is not a known permission profile; "
        "declare its permissions explicitly"
    )


def _build_profile(
    name: str,
    tier: BucketTier,
    bucket_name: str,
    access_key: str,
    secret_key: str,
    settings: Settings,
    permissions: PermissionSet,
    admin_access_key: Optional[str] = None,
    admin_secret_key: Optional[str] = None,
) -> BucketProfile:
    identity = BucketIdentity(
        name=bucket_name,
        region=settings.region_name,
        endpoint=settings.endpoint_url,
        credentials=Credentials(access_key, secret_key),
    )

    admin_identity = None
    if admin_access_key and admin_secret_key:
        admin_identity = replace(identity, credentials=Credentials(admin_access_key, admin_secret_key))

    return BucketProfile(
        name=name,
        tier=tier,
        identity=identity,
        permissions=permissions,
        admin_identity=admin_identity,
    )


def load_from_json(config_path: str) -> tuple[Settings, dict[str, BucketProfile]]:
    """Load settings and profiles from a JSON file.

    Args:
        config_path: Path to the config.json file.

    Returns:
        Tuple of (settings, profiles). Only enabled profiles are included.

    Raises:
        ConfigError: If file doesn't exist, contains invalid JSON,
                    or is missing required fields.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")

    settings = load_settings(data.get("settings"))
    profiles: dict[str, BucketProfile] = {}

    for name, config in data.get("profiles", {}).items():
        # Skip disabled profiles
        if not config.get("enabled", True):
            continue

        # Validate required fields
        for field_name in REQUIRED_FIELDS:
            if field_name not in config:
                raise ConfigError(
                    f"Missing required field '{field_name}' for profile '{name}'"
                )

        tier = _parse_tier(config.get("tier", "limited"), name)
        profiles[name] = _build_profile(
            name=name,
            tier=tier,
            bucket_name=config["bucket_name"],
            access_key=config["aws_access_key_id"],
            secret_key=config["aws_secret_access_key"],
            settings=settings,
            permissions=_resolve_permissions(name, tier, config.get("permissions")),
            admin_access_key=config.get("admin_access_key_id"),
            admin_secret_key=config.get("admin_secret_access_key"),
        )

    return settings, profiles


def load_from_env(settings: Optional[Settings] = None) -> dict[str, BucketProfile]:
    """Load profiles from environment variables.

    Discovers profiles by looking for PROFILE_* environment variables.
    For each profile, expects corresponding credential variables.

    Args:
        settings: Settings used for region and endpoint (loaded from the
                 environment when omitted).

    Returns:
        Dictionary mapping profile names to BucketProfile objects.

    Raises:
        ConfigError: If environment variables are malformed or
                    required credential variables are missing.
    """
    if settings is None:
        settings = load_settings()

    profiles: dict[str, BucketProfile] = {}

    for env_key, env_value in os.environ.items():
        if not env_key.startswith("PROFILE_"):
            continue

        # "PROFILE_READ_WRITE" -> "READ_WRITE"
        name = env_key[len("PROFILE_"):]

        # Parse pipe-delimited value: BucketName|Tier
        parts = env_value.split("|")
        if len(parts) != 2:
            raise ConfigError(
                f"Invalid format for {env_key}. Expected: BucketName|Tier"
            )

        bucket_name, tier_value = parts
        tier = _parse_tier(tier_value, name)

        access_key_var = f"{name}_ACCESS_KEY"
        secret_key_var = f"{name}_SECRET_KEY"

        access_key = os.environ.get(access_key_var)
        if not access_key:
            raise ConfigError(f"Missing environment variable: {access_key_var}")

        secret_key = os.environ.get(secret_key_var)
        if not secret_key:
            raise ConfigError(f"Missing environment variable: {secret_key_var}")

        profiles[name] = _build_profile(
            name=name,
            tier=tier,
            bucket_name=bucket_name,
            access_key=access_key,
            secret_key=secret_key,
            settings=settings,
            permissions=_resolve_permissions(name, tier, os.environ.get(f"{name}_PERMISSIONS")),
            admin_access_key=os.environ.get(f"{name}_ADMIN_ACCESS_KEY"),
            admin_secret_key=os.environ.get(f"{name}_ADMIN_SECRET_KEY"),
        )

    return profiles


def has_env_profiles() -> bool:
    """Check if any PROFILE_* environment variables exist."""
    return any(key.startswith("PROFILE_") for key in os.environ)


def load_config(
    config_path: str = "config.json",
) -> tuple[Settings, dict[str, BucketProfile]]:
    """Load settings and profiles with environment priority.

    Priority order:
    1. Environment variables (if any PROFILE_* vars exist)
    2. config.json file

    Settings always honour S3PERM_* environment overrides.

    Args:
        config_path: Path to config.json (used as fallback).

    Returns:
        Tuple of (settings, profiles).

    Raises:
        ConfigError: If no profiles are configured or all are disabled.
    """
    profiles: dict[str, BucketProfile] = {}
    settings = load_settings()

    if has_env_profiles():
        profiles = load_from_env(settings)
    elif Path(config_path).exists():
        settings, profiles = load_from_json(config_path)

    if not profiles:
        raise ConfigError(
            "No profiles configured. Set PROFILE_* environment variables "
            "or create a config.json file with at least one enabled profile."
        )

    return settings, profiles
