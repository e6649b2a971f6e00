"""Logging subsystem for acmegate.

Public API::

    from acmegate.logging import configure_logging, renewal_context

    configure_logging(settings.logging)
"""

from acmegate.logging.setup import configure_logging, renewal_context

__all__ = ["configure_logging", "renewal_context"]
