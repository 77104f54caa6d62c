# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for mailsmith.

The library never configures handlers, levels or formats; that belongs to the
application embedding it (``logging.basicConfig()`` in its entry point).

Example:
    Typical usage in a module::

        from mailsmith.logger import get_logger

        logger = get_logger("SMTPDeliveryDriver")
        logger.debug("EHLO accepted")
"""

import logging


def get_logger(name: str = "Mailsmith") -> logging.Logger:
    """Retrieve a logger instance.

    Args:
        name: The logger name. Defaults to "Mailsmith".

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)
