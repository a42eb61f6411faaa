"""
Suite: several root specifications collected as one unit.

A module can describe more than one subject and expose them together::

    suite = Suite()

    @suite.describe(Stack)
    def _(spec): ...

    @suite.describe(Queue)
    def _(spec): ...

Hosts iterate the suite to obtain one root per described subject.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator

from nestspec.events import EventCallback
from nestspec.node import Builder, RootNode, describe


class Suite:
    """An ordered collection of root specifications."""

    def __init__(self, on_event: EventCallback | None = None) -> None:
        """
        Initialize the suite.

        Args:
            on_event: Default event callback for specifications described
                through this suite.
        """
        self._roots: list[RootNode] = []
        self._on_event = on_event

    @property
    def roots(self) -> list[RootNode]:
        return list(self._roots)

    def add(self, root: RootNode) -> RootNode:
        """Add an already built specification."""
        if not isinstance(root, RootNode):
            raise TypeError(f"Expected a RootNode, got {type(root).__name__}")
        self._roots.append(root)
        return root

    def describe(
        self,
        subject: Any,
        builder: Builder | None = None,
        *,
        flat: bool | None = None,
    ) -> RootNode | Callable[[Builder], RootNode]:
        """
        Build a specification for ``subject`` and add it to the suite.

        Same arguments as nestspec.describe(); usable as a decorator.
        """

        def decorator(fn: Builder) -> RootNode:
            return self.add(describe(subject, fn, flat=flat, on_event=self._on_event))

        if builder is not None:
            return decorator(builder)
        return decorator

    def __iter__(self) -> Iterator[RootNode]:
        return iter(self._roots)

    def __len__(self) -> int:
        return len(self._roots)

    def __repr__(self) -> str:
        return f"Suite({[r.name for r in self._roots]!r})"
