"""Error taxonomy shared by every bounded context.

Module-level exceptions (``modules.<context>.exceptions``) subclass one
of these so the API layer can map whole families to HTTP responses.
"""

from __future__ import annotations


class ShopError(Exception):
    """Root of all domain errors raised by the service layer."""


class DomainValidationError(ShopError):
    """Input or business-rule violation; the order state is unchanged."""


class NotFound(ShopError):
    """A record the caller explicitly asked for does not exist."""


class ConcurrencyConflict(ShopError):
    """Unique-constraint race on a generated identifier.

    Services recover from this locally (regenerate or re-read); it should
    never reach the API layer.
    """



class PersistenceError(ShopError):
    """Lower-level storage failure reported by a ledger operation."""
