"""
Collaborators: lazily constructed, memoized, refinable fixture values.

A Collaborator is the handle returned by ``support`` and ``subject``. It holds
the root initializer, an optional destructor and the refinements contributed
by the context that declared it and by its descendants. It never holds a
value: resolved values live in the ExecutionContext of a single run.

Resolution (see ``compute``):

1. value = initializer(ctx)
2. for each node on the run's ancestor chain, root first, fold that node's
   refinements over the value in registration order

so the most specific context has the last word while still seeing what the
shallower contexts produced.
"""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from nestspec.errors import SpecUsageError

if TYPE_CHECKING:
    from nestspec.execution import ExecutionContext
    from nestspec.node import SpecNode

logger = logging.getLogger(__name__)

T = TypeVar("T")

Initializer = Callable[["ExecutionContext"], T]
Refinement = Callable[["ExecutionContext", T], T]
Destructor = Callable[["ExecutionContext", T], None]


@runtime_checkable
class SupportsClose(Protocol):
    """
    Capability: a resource released by calling ``close()``.

    Resolved values implementing this are closed after the example when their
    collaborator was declared without an explicit destructor.
    """

    def close(self) -> Any: ...


class Collaborator(Generic[T]):
    """
    Handle for a fixture declared with ``support`` or ``subject``.

    Call it with the execution context of a running example to obtain the
    value for that run::

        account = spec.subject(lambda t: Account(balance=10))

        @spec.it("starts with the opening balance")
        def _(t):
            assert account(t).balance == 10
    """

    def __init__(
        self,
        initializer: Initializer[T],
        destructor: Destructor[T] | None,
        declared_in: SpecNode,
    ) -> None:
        """
        Initialize the collaborator.

        Args:
            initializer: Produces the unrefined value for a run.
            destructor: Optional cleanup for the resolved value.
            declared_in: The node whose builder declared this collaborator.
        """
        if not callable(initializer):
            raise TypeError(
                f"Collaborator initializer must be callable, got {initializer!r}"
            )
        if destructor is not None and not callable(destructor):
            raise TypeError(
                f"Collaborator destructor must be callable, got {destructor!r}"
            )
        self._initializer = initializer
        self._destructor = destructor
        self._declared_in = declared_in
        self._name = getattr(initializer, "__name__", type(initializer).__name__)
        self._refinements: dict[SpecNode, list[Refinement[T]]] = {}

    @property
    def name(self) -> str:
        """Name of the initializer, used in diagnostics."""
        return self._name

    @property
    def declared_in(self) -> SpecNode:
        """The node that declared this collaborator."""
        return self._declared_in

    def refinements_for(self, node: SpecNode) -> tuple[Refinement[T], ...]:
        """Refinements registered by ``node``, in registration order."""
        return tuple(self._refinements.get(node, ()))

    def add_refinement(self, node: SpecNode, refinement: Refinement[T]) -> None:
        """
        Append a refinement scoped to ``node``.

        Only called while ``node`` is being built; the refinement storage is
        read-only once every builder has returned.
        """
        self._refinements.setdefault(node, []).append(refinement)

    def compute(self, ctx: ExecutionContext) -> T:
        """
        Produce a fresh value for the run owning ``ctx``.

        Does not memoize; ExecutionContext.resolve is the memoizing entry point.
        """
        value = self._initializer(ctx)
        for ancestor in ctx.node.ancestors:
            for refinement in self._refinements.get(ancestor, ()):
                value = refinement(ctx, value)
        return value

    def release(self, ctx: ExecutionContext, value: T) -> None:
        """
        Release a resolved value at the end of a run.

        Uses the explicit destructor when one was declared, otherwise closes
        values implementing SupportsClose. A ``close`` attribute that is not
        callable, such as a record field, is data and is left alone.
        """
        if self._destructor is not None:
            self._destructor(ctx, value)
        elif isinstance(value, SupportsClose) and callable(value.close):
            logger.debug(f"Closing {type(value).__name__} resolved by {self!r}")
            value.close()

    def __call__(self, ctx: ExecutionContext) -> T:
        """Resolve this collaborator within a running example."""
        from nestspec.execution import ExecutionContext

        if not isinstance(ctx, ExecutionContext):
            raise SpecUsageError(
                f"{self!r} can only be resolved inside an example, "
                f"with the example's execution context (got {ctx!r})"
            )
        return ctx.resolve(self)

    def __repr__(self) -> str:
        return f"Collaborator({self._name} @ {self._declared_in.name!r})"
