"""
Exception hierarchy for nestspec.

Structural misuse is reported while the specification is being built.
Failures raised by example bodies, initializers and refinements are never
wrapped: they propagate out of Example.run() unchanged.
"""

from __future__ import annotations


class NestspecError(Exception):
    """Base class for all nestspec errors."""

    pass


class SpecUsageError(NestspecError):
    """Raised when the specification DSL is used incorrectly."""

    pass


class InvalidCollaboratorError(SpecUsageError, ValueError):
    """Raised when refine() is given something it cannot refine."""

    pass


class CollaboratorCycleError(NestspecError):
    """Raised when a collaborator depends on itself within one run."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"Collaborator cycle detected: {' -> '.join(chain)}")


class CleanupError(NestspecError):
    """
    Raised when releasing collaborators fails after a successful example body.

    Attributes:
        errors: Every exception raised during the cleanup sweep, in the order
            they occurred.
    """

    def __init__(self, example: str, errors: list[BaseException]) -> None:
        self.errors = errors
        super().__init__(
            f"{len(errors)} collaborator(s) failed to clean up after {example!r}: "
            + "; ".join(f"{type(e).__name__}: {e}" for e in errors)
        )
