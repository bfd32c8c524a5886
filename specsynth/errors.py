"""Exception hierarchy for the synthesis service.

Everything raised on purpose derives from SpecSynthError so the API layer
can map failures to responses in one place. LLM-specific errors live next
to the code that raises them (llm.client, llm.invoker, llm.validators) and
subclass the same base.
"""

from typing import Optional


class SpecSynthError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str, *, shopify_handle: Optional[str] = None,
                 operation: Optional[str] = None):
        super().__init__(message)
        self.shopify_handle = shopify_handle
        self.operation = operation


class NoSourcesError(SpecSynthError):
    """No published source specifications exist for the product."""


class SynthesisAlreadyExistsError(SpecSynthError):
    """generate() called for a handle that already has a synthesis."""


class SynthesisNotFoundError(SpecSynthError):
    """refresh()/get() called for a handle with no synthesis."""


class ReferenceDataError(SpecSynthError):
    """Required seed data (status row, system user) is missing."""


class AIUserNotFoundError(ReferenceDataError):
    """The system AI account does not exist. It is never auto-created."""
