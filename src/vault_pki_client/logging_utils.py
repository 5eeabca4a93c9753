from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOGGER_NAMESPACE = "vault_pki_client"
DEFAULT_LOG_FILE = "logs/vault-pki-client.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw}") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be >= 0, got: {raw}")
    return parsed


def resolve_log_level(level: str | int) -> int:
    if not isinstance(level, str):
        return int(level)
    normalized = level.strip().upper()
    if normalized.isdigit():
        return int(normalized)
    numeric = logging.getLevelName(normalized)
    if not isinstance(numeric, int):
        raise ValueError(f"Invalid log level: {level}")
    return numeric


def get_logger(component: str, parent: logging.Logger | None = None) -> logging.Logger:
    """Child logger for a client component, rooted at ``parent`` when given."""
    if parent is None:
        return logging.getLogger(f"{LOGGER_NAMESPACE}.{component}")
    return parent.getChild(component)


def configure_logging(
    *,
    log_file: str | Path | None = None,
    level: str | int | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    console: bool = False,
) -> logging.Logger:
    """
    Attach a rotating file handler to the vault_pki_client logger namespace.

    Calling this again with the same file only updates the level.

    Environment variable overrides:
    - VAULT_PKI_CLIENT_LOG_FILE
    - VAULT_PKI_CLIENT_LOG_LEVEL
    - VAULT_PKI_CLIENT_LOG_MAX_BYTES
    - VAULT_PKI_CLIENT_LOG_BACKUP_COUNT
    """

    target = Path(
        str(log_file or os.environ.get("VAULT_PKI_CLIENT_LOG_FILE", DEFAULT_LOG_FILE))
    )
    numeric_level = resolve_log_level(
        level or os.environ.get("VAULT_PKI_CLIENT_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    )
    if max_bytes is None:
        max_bytes = _env_int("VAULT_PKI_CLIENT_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES)
    if backup_count is None:
        backup_count = _env_int(
            "VAULT_PKI_CLIENT_LOG_BACKUP_COUNT", DEFAULT_LOG_BACKUP_COUNT
        )
    if max_bytes < 0:
        raise ValueError("max_bytes must be >= 0.")
    if backup_count < 0:
        raise ValueError("backup_count must be >= 0.")

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(numeric_level)
    logger.propagate = False
    formatter = logging.Formatter(LOG_FORMAT)

    if console and not any(
        type(existing) is logging.StreamHandler for existing in logger.handlers
    ):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    resolved_target = target.resolve()
    for existing in logger.handlers:
        if (
            isinstance(existing, RotatingFileHandler)
            and Path(existing.baseFilename).resolve() == resolved_target
        ):
            existing.setLevel(numeric_level)
            return logger

    target.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        target,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.info(
        "Logging to %s (level=%s, max_bytes=%d, backup_count=%d)",
        target,
        logging.getLevelName(numeric_level),
        max_bytes,
        backup_count,
    )
    return logger
