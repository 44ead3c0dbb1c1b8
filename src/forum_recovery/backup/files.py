"""Bundle and quarantine file I/O.

Files land under ``./backups/`` by default and are named with a unix
millisecond timestamp.  Writes use exclusive create, so two runs never
overwrite each other's output: on a name collision the timestamp is
bumped until a free name is found.

Usage:
    from forum_recovery.backup.files import load_bundle, write_bundle

    path = write_bundle(bundle)
    same = load_bundle(path)
"""

import json
import re
import time
from pathlib import Path

from pydantic import ValidationError

from forum_recovery.backup.models import (
    SUPPORTED_BUNDLE_VERSIONS,
    Bundle,
    QuarantineFile,
)
from forum_recovery.errors import BundleNotFoundError, InvalidBundleError

BACKUPS_DIRNAME = "backups"


def default_backups_dir() -> Path:
    """``./backups`` relative to the current working directory."""
    return Path.cwd() / BACKUPS_DIRNAME


def sanitize_domain(domain: str) -> str:
    """Replace every non-alphanumeric character with ``_``."""
    return re.sub(r"[^a-zA-Z0-9]", "_", domain)


def _unix_ms() -> int:
    return time.time_ns() // 1_000_000


def _write_exclusive(directory: Path, stem: str, payload: str) -> Path:
    """Write ``payload`` to ``<directory>/<stem>_<unix-ms>.json``, never overwriting."""
    directory.mkdir(parents=True, exist_ok=True)
    stamp = _unix_ms()
    while True:
        path = directory / f"{stem}_{stamp}.json"
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(payload)
            return path
        except FileExistsError:
            stamp += 1


def write_bundle(bundle: Bundle, backups_dir: str | Path | None = None) -> Path:
    """Write a bundle as ``backup_<domain>_<unix-ms>.json``.

    Returns:
        Path of the created file.
    """
    directory = Path(backups_dir) if backups_dir is not None else default_backups_dir()
    stem = f"backup_{sanitize_domain(bundle.tenant.domain)}"
    return _write_exclusive(directory, stem, bundle.to_json())


def write_quarantine(
    quarantine: QuarantineFile, backups_dir: str | Path | None = None
) -> Path:
    """Write orphaned rows as ``orphaned_data_<unix-ms>.json``."""
    directory = Path(backups_dir) if backups_dir is not None else default_backups_dir()
    return _write_exclusive(directory, "orphaned_data", quarantine.to_json())


def _read_json(path: str | Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise BundleNotFoundError(str(path)) from None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidBundleError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise InvalidBundleError(f"Cannot read {path}: {e}") from e


def load_bundle(path: str | Path) -> Bundle:
    """Read and validate a bundle file.

    Raises:
        BundleNotFoundError: If the file does not exist.
        InvalidBundleError: If the file is not valid JSON, does not match
            the bundle format, has an unsupported version, or its
            ``totalRecords`` disagrees with its contents.
    """
    data = _read_json(path)

    metadata = data.get("metadata") if isinstance(data, dict) else None
    version = metadata.get("version") if isinstance(metadata, dict) else None
    if version not in SUPPORTED_BUNDLE_VERSIONS:
        raise InvalidBundleError(
            f"Unsupported bundle version '{version}' in {path} "
            f"(expected one of: {', '.join(sorted(SUPPORTED_BUNDLE_VERSIONS))})"
        )

    try:
        return Bundle.model_validate(data)
    except ValidationError as e:
        raise InvalidBundleError(f"Invalid bundle {path}: {e}") from e


def load_quarantine(path: str | Path) -> QuarantineFile:
    """Read and validate a quarantine file for manual recovery.

    Raises:
        BundleNotFoundError: If the file does not exist.
        InvalidBundleError: If the file does not match the quarantine format.
    """
    data = _read_json(path)
    try:
        return QuarantineFile.model_validate(data)
    except ValidationError as e:
        raise InvalidBundleError(f"Invalid quarantine file {path}: {e}") from e
