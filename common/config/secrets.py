import os
import logging
from typing import Optional

logger = logging.getLogger("secrets-loader")

SECRETS_DIR = "/run/secrets"

def get_secret(name: str, default: Optional[str] = None, required: bool = False,
               secrets_dir: str = SECRETS_DIR) -> Optional[str]:
    """
    Retrieves a secret from {secrets_dir}/{name} (mounted K8s secret) or ENV.
    A non-empty file wins over the environment.
    """
    file_path = os.path.join(secrets_dir, name)
    if os.path.exists(file_path):
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
            if value:
                return value
        except OSError as e:
            logger.warning(f"Failed to read secret file {file_path}: {e}")

    value = os.getenv(name)
    if value:
        return value

    if default is not None:
        return default

    if required:
        msg = f"CRITICAL: Missing required secret: {name}"
        logger.critical(msg)
        raise RuntimeError(msg)

    return None

def redact(value: Optional[str]) -> str:
    """
    Redacts a string for logging (first 2 chars and last char visible).
    """
    if not value:
        return "<None>"
    if len(value) < 4:
        return "***"
    return f"{value[:2]}***{value[-1]}"
