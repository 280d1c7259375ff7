"""Logging setup for the notegraph CLI.

Library modules only create ``logging.getLogger(__name__)`` loggers; this
module attaches the single stderr handler.  ``--verbose`` lowers the
package to INFO (index builds, centrality repairs) and opens DEBUG for the
retrieval path only, where expansions, activation sizes and merge
decisions are logged per query.
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER = "notegraph"

# Per-query tracing lives here; storage stays at INFO even when verbose.
VERBOSE_LOGGERS = ("notegraph.search", "notegraph.api")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure and return the ``notegraph`` logger.

    Safe to call repeatedly: the handler is attached once, levels are
    reset on every call so the latest *verbose* flag wins.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    for name in VERBOSE_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.NOTSET)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(handler)
    return logger
