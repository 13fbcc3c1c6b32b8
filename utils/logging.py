"""Named loggers for SkimGuard components."""

from __future__ import annotations

import logging

LOGGER_PREFIX = 'skimguard'


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the application namespace (skimguard.<name>)."""
    if name.startswith(f'{LOGGER_PREFIX}.') or name == LOGGER_PREFIX:
        return logging.getLogger(name)
    return logging.getLogger(f'{LOGGER_PREFIX}.{name}')


# Pre-configured component loggers
app_logger = get_logger(LOGGER_PREFIX)
classifier_logger = get_logger('classifier')
risk_logger = get_logger('risk')
vault_logger = get_logger('vault')
custody_logger = get_logger('custody')
sync_logger = get_logger('sync')
scan_logger = get_logger('scan')
