"""Tenant store factory.

Resolves a connection URL from, in order:

1. an explicit ``database_url`` argument;
2. a named profile in db.toml (argument, then ``{env_prefix}DB_PROFILE``);
3. the ``{env_prefix}DATABASE_URL`` environment variable.

Every call builds a new adapter: callers own the store handle they get
and close it when done.  There is no module-level cache.
"""

import os
from pathlib import Path
from urllib.parse import quote

from forum_recovery.adapters.postgres import AsyncPostgresAdapter
from forum_recovery.config.loader import load_db_config
from forum_recovery.config.models import DatabaseProfile


class ProfileNotFoundError(Exception):
    """Raised when no database profile or URL is configured."""

    pass


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the ``{env_prefix}DB_PROFILE`` env var.

    Raises:
        ProfileNotFoundError: If the variable is unset
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_var}=<name>, pass --profile <name>, "
        f"or set {env_prefix}DATABASE_URL."
    )


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with ``[YOUR-PASSWORD]`` replaced by the
        URL-encoded ``db_password``
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_adapter(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    config_path: Path | None = None,
) -> AsyncPostgresAdapter:
    """Create a tenant store for a URL or profile.

    Args:
        profile_name: Profile from db.toml.  When ``None``, read from
            ``{env_prefix}DB_PROFILE``.
        env_prefix: Prefix for environment variable lookup.
        database_url: Direct URL; skips profile resolution entirely.
        config_path: Alternate db.toml location.

    Returns:
        A new ``AsyncPostgresAdapter``.

    Raises:
        ProfileNotFoundError: If nothing is configured.
        KeyError: If the profile is not declared in db.toml.
        FileNotFoundError: If a profile is requested but db.toml is missing.

    Example:
        store = get_adapter(profile_name="local")
        try:
            report = await backup_tenant(store, "tenant-1")
        finally:
            await store.close()
    """
    if database_url:
        return AsyncPostgresAdapter(database_url)

    if profile_name is None:
        try:
            profile_name = get_active_profile_name(env_prefix)
        except ProfileNotFoundError:
            env_url = os.environ.get(f"{env_prefix}DATABASE_URL")
            if env_url:
                return AsyncPostgresAdapter(env_url)
            raise

    config = load_db_config(config_path)
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys())
        raise KeyError(
            f"Profile '{profile_name}' not found in db.toml. "
            f"Available: {available}"
        )
    return AsyncPostgresAdapter(resolve_url(config.profiles[profile_name]))
