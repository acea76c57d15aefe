"""
perfkit: helpers for Locust load-test scripts.

The package bundles four independent utilities that a load-test script
composes on its own:

- :mod:`perfkit.token_cache` keeps one auth token per worker process and
  refreshes it before it expires.
- :mod:`perfkit.datasets` loads CSV test data and hands every
  ``(worker, sequence)`` pair a row nobody else gets.
- :mod:`perfkit.correlation` pulls identifiers out of one response so later
  requests in the same run can use them.
- :mod:`perfkit.validation` and :mod:`perfkit.error_log` check responses and
  record failures for an end-of-run summary.

None of the components call each other; the load-test script wires them
together.
"""

import logging

from perfkit.config import get_config

__version__ = "0.1.0"

# Configure logging
logging.basicConfig(
    level=get_config().LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)
