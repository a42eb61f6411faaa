"""
ExecutionContext: the per-run object handed to example bodies.

One ExecutionContext is created for every run of an example. It resolves
collaborators against the owning node's ancestor chain, memoizes them for the
duration of the run and releases them afterwards. It is never shared between
runs, which is what isolates examples from each other.

The builder operations (describe, context, it, support, subject, refine) are
present only to fail loudly: the tree is complete before any example runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NoReturn, TypeVar

from nestspec.collaborator import Collaborator
from nestspec.errors import CollaboratorCycleError, SpecUsageError
from nestspec.events import EventEmitter

if TYPE_CHECKING:
    from nestspec.node import Example, SpecNode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutionContext:
    """
    Resolution and cleanup scope for a single example run.

    Attributes:
        example: The example being run.
        node: The context node that registered the example.
        logger: A logger example bodies may use for their own output.
    """

    def __init__(self, example: Example, emitter: EventEmitter | None = None) -> None:
        self.example = example
        self.node: SpecNode = example.node
        self.logger = logging.getLogger("nestspec.example")
        self._emitter = emitter or EventEmitter(None, example.display_name)
        # Membership is the resolved/unresolved distinction; None is a valid value.
        self._memo: dict[Collaborator[Any], Any] = {}
        self._resolving: list[Collaborator[Any]] = []

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, collaborator: Collaborator[T]) -> T:
        """
        Return the value of ``collaborator`` for this run.

        The initializer and every applicable refinement run at most once per
        run. If any of them raises, nothing is memoized and the exception
        propagates to the example body.

        Raises:
            CollaboratorCycleError: If the collaborator is already being
                resolved further up the call stack.
            SpecUsageError: If the collaborator is not visible from the
                example's context.
        """
        if collaborator in self._memo:
            return self._memo[collaborator]

        if collaborator in self._resolving:
            start = self._resolving.index(collaborator)
            chain = [c.name for c in self._resolving[start:]] + [collaborator.name]
            raise CollaboratorCycleError(chain)

        if collaborator.declared_in not in self.node.ancestors:
            raise SpecUsageError(
                f"{collaborator!r} is not visible from {self.example.display_name!r}; "
                f"collaborators can only be used by examples in the context that "
                f"declared them or its descendants"
            )

        self._resolving.append(collaborator)
        try:
            value = collaborator.compute(self)
        finally:
            self._resolving.pop()

        self._memo[collaborator] = value
        logger.debug(f"Resolved {collaborator!r} for {self.example.display_name!r}")
        self._emitter.collaborator_resolved(collaborator.name)
        return value

    def is_resolved(self, collaborator: Collaborator[Any]) -> bool:
        """Return True if ``collaborator`` has been resolved in this run."""
        return collaborator in self._memo

    def force(self, *items: Any) -> None:
        """
        Ensure collaborators are evaluated.

        Accepts collaborator handles, which are resolved, and already
        resolved values, which are ignored, so both ``t.force(db)`` and
        ``t.force(db(t))`` work.
        """
        for item in items:
            if isinstance(item, Collaborator):
                self.resolve(item)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def release_all(self) -> list[BaseException]:
        """
        Release every collaborator resolved during this run.

        Collaborators are released in reverse resolution order, each at most
        once. A failing release does not stop the sweep, including releases
        raising BaseException subclasses such as ``pytest.fail`` outcomes.

        Returns:
            The exceptions raised by failing releases, in the order they
            occurred.
        """
        errors: list[BaseException] = []
        resolved = list(self._memo.items())
        self._memo.clear()
        for collaborator, value in reversed(resolved):
            try:
                collaborator.release(self, value)
            except BaseException as e:
                logger.debug(
                    f"Releasing {collaborator!r} for {self.example.display_name!r} "
                    f"failed: {e}"
                )
                errors.append(e)
            else:
                self._emitter.collaborator_released(collaborator.name)
        return errors

    # ------------------------------------------------------------------
    # Builder operations are not available inside examples
    # ------------------------------------------------------------------

    def _not_in_example(self, operation: str) -> NoReturn:
        raise SpecUsageError(
            f"{operation}() inside an example is not allowed "
            f"(in {self.example.display_name!r})"
        )

    def describe(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("describe")

    def context(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("context")

    def it(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("it")

    def support(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("support")

    def subject(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("subject")

    def refine(self, *args: Any, **kwargs: Any) -> NoReturn:
        self._not_in_example("refine")

    def __repr__(self) -> str:
        return f"ExecutionContext({self.example.display_name!r})"
