"""Configuration and credential loading.

Credentials come from the system keyring (service ``cloudlib-aws``) with
the standard AWS environment variables as fallback. Non-secret settings
live in an optional JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import keyring

from cloudlib.models import LibraryConfig

logger = logging.getLogger(__name__)

SERVICE_NAME = "cloudlib-aws"
ACCESS_KEY_NAME = "access_key_id"
SECRET_KEY_NAME = "secret_access_key"

LIBRARY_ENV = "CLOUDLIB_LIBRARY_NAME"
DEFAULT_CONFIG_PATH = Path("config/cloudlib.json")


def get_credentials() -> tuple[str, str]:
    """Get AWS credentials: system keyring first, then environment variables.

    Returns:
        ``(access_key_id, secret_access_key)``.

    Raises:
        RuntimeError: If no credentials are found, with setup instructions.
    """
    key_id = keyring.get_password(SERVICE_NAME, ACCESS_KEY_NAME)
    secret = keyring.get_password(SERVICE_NAME, SECRET_KEY_NAME)
    if key_id and secret:
        return key_id, secret

    key_id = os.environ.get("AWS_ACCESS_KEY_ID")
    secret = os.environ.get("AWS_SECRET_ACCESS_KEY")
    if key_id and secret:
        return key_id, secret

    raise RuntimeError(
        "AWS credentials not found.\n"
        "Set them with: cloudlib config set-credentials KEY_ID\n"
        "Or: export AWS_ACCESS_KEY_ID=... AWS_SECRET_ACCESS_KEY=..."
    )


def load_library_config(
    library_name: str | None = None,
    config_path: Path | None = None,
) -> LibraryConfig:
    """Build a :class:`LibraryConfig` from file, environment and keyring.

    The library name is resolved from, in order: the *library_name*
    argument, the ``CLOUDLIB_LIBRARY_NAME`` environment variable, and the
    ``library_name`` key of the JSON file.

    Args:
        library_name: Explicit library name (e.g. from ``--library``).
        config_path: Optional path to the JSON settings file; defaults to
            ``config/cloudlib.json`` and is skipped if missing.

    Raises:
        RuntimeError: If no library name or no credentials can be found.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        logger.debug("Loaded settings from %s", config_path)

    field_names = {f for f in LibraryConfig.__dataclass_fields__}
    # Secrets are never read from the settings file
    kwargs = {
        k: v for k, v in data.items()
        if k in field_names and k not in ("access_key_id", "secret_access_key")
    }

    name = library_name or os.environ.get(LIBRARY_ENV) or kwargs.pop("library_name", None)
    kwargs.pop("library_name", None)
    if not name:
        raise RuntimeError(
            "No library name given.\n"
            f"Pass --library NAME, export {LIBRARY_ENV}=NAME, "
            f"or set library_name in {config_path}"
        )

    key_id, secret = get_credentials()
    return LibraryConfig(
        library_name=name,
        access_key_id=key_id,
        secret_access_key=secret,
        **kwargs,
    )
