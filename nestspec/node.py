"""
Specification tree: context nodes, examples and the builder DSL.

A specification is built by calling ``describe`` with a builder function. The
builder receives the node it is building and uses it to declare nested
contexts, examples and collaborators::

    @describe(Stack)
    def test_stack(spec):
        stack = spec.subject(lambda t: Stack())

        @spec.it("starts empty")
        def _(t):
            assert stack(t).is_empty()

        @spec.context("with one item")
        def _(spec):
            @spec.refine(stack)
            def _(t, s):
                s.push(1)
                return s

            @spec.it("is not empty")
            def _(t):
                assert not stack(t).is_empty()

Builders run synchronously, so the tree is complete when ``describe`` returns.
A node accepts builder operations only while its own builder is running.
"""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Callable,
    Iterator,
    TypeVar,
    overload,
)

from nestspec.collaborator import Collaborator, Destructor, Initializer, Refinement
from nestspec.config import default_flat_namespace
from nestspec.errors import CleanupError, InvalidCollaboratorError, SpecUsageError
from nestspec.events import EventCallback, EventEmitter
from nestspec.execution import ExecutionContext
from nestspec.naming import NamingStrategy, naming_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

Builder = Callable[["SpecNode"], Any]
Body = Callable[[ExecutionContext], Any]


class SpecNode:
    """
    A context in the specification tree (the root or a describe/context).

    Attributes:
        name: The local description of this context.
        parent: The enclosing context, None for the root.
        ancestors: Every context from the root down to this one, inclusive.
        children: Nested contexts and examples in declaration order.
        collaborators: Collaborators declared by this context.
    """

    def __init__(self, name: str, parent: SpecNode | None) -> None:
        self.name = name
        self.parent = parent
        self.ancestors: tuple[SpecNode, ...] = (
            (*parent.ancestors, self) if parent is not None else (self,)
        )
        self._children: list[SpecNode | Example] = []
        self.collaborators: list[Collaborator[Any]] = []
        self._open = False

    @property
    def root(self) -> RootNode:
        root = self.ancestors[0]
        assert isinstance(root, RootNode)
        return root

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def grouping_key(self) -> str | None:
        return None

    @property
    def is_open(self) -> bool:
        """True while this node's builder is running."""
        return self._open

    @property
    def depth(self) -> int:
        return len(self.ancestors) - 1

    @property
    def children(self) -> tuple[SpecNode | Example, ...]:
        """Nested contexts and examples in declaration order (read-only)."""
        return tuple(self._children)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _build(self, builder: Builder) -> None:
        if not callable(builder):
            raise TypeError(f"Builder for {self.name!r} must be callable, got {builder!r}")
        self._open = True
        try:
            builder(self)
        finally:
            self._open = False

    def _check_open(self, operation: str) -> None:
        if not self._open:
            raise SpecUsageError(
                f"{operation}() on {self.name!r} is only allowed while its "
                f"builder is running; the specification is already built"
            )

    @overload
    def describe(self, name: str, builder: Builder) -> ChildNode: ...
    @overload
    def describe(
        self, name: str, builder: None = None
    ) -> Callable[[Builder], ChildNode]: ...

    def describe(
        self, name: str, builder: Builder | None = None
    ) -> ChildNode | Callable[[Builder], ChildNode]:
        """
        Define a nested specification for a particular thing.

        Args:
            name: The described thing (e.g. "#push").
            builder: Called immediately with the new child node. When omitted,
                a decorator is returned instead.

        Returns:
            The new child node, or a decorator producing it.
        """
        self._check_open("describe")

        def decorator(fn: Builder) -> ChildNode:
            self._check_open("describe")
            child = ChildNode(name, self)
            self._children.append(child)
            logger.debug(f"Building context {name!r} under {self.name!r}")
            child._build(fn)
            return child

        if builder is not None:
            return decorator(builder)
        return decorator

    def context(
        self, name: str, builder: Builder | None = None
    ) -> ChildNode | Callable[[Builder], ChildNode]:
        """
        Define a nested specification for a particular situation.

        Alias of :meth:`describe` (e.g. ``spec.context("when empty", ...)``).
        """
        return self.describe(name, builder)

    def it(
        self, description: str, body: Body | None = None
    ) -> Example | Callable[[Body], Example]:
        """
        Define an example.

        Args:
            description: What the example demonstrates.
            body: Called with a fresh ExecutionContext each time the example
                runs. When omitted, a decorator is returned instead.

        Returns:
            The registered example, or a decorator producing it.
        """
        self._check_open("it")

        def decorator(fn: Body) -> Example:
            self._check_open("it")
            if not callable(fn):
                raise TypeError(f"Body of {description!r} must be callable, got {fn!r}")
            example = Example(
                description=description,
                display_name=self.root.naming.example_name(self, description),
                node=self,
                body=fn,
                grouping_key=self.root.naming.grouping_key,
            )
            self._children.append(example)
            logger.debug(f"Registered example {example.display_name!r}")
            return example

        if body is not None:
            return decorator(body)
        return decorator

    def support(
        self,
        initializer: Initializer[T] | None = None,
        destructor: Destructor[T] | None = None,
    ) -> Collaborator[T] | Callable[[Initializer[T]], Collaborator[T]]:
        """
        Define a refinable supporting collaborator.

        The initializer runs at most once per example run, the first time the
        collaborator is resolved.

        Args:
            initializer: Produces the value from the run's ExecutionContext.
                When omitted, a decorator is returned instead.
            destructor: Called with the context and the refined value after
                the example finishes. Without one, values with a ``close()``
                method are closed.

        Returns:
            The collaborator handle, or a decorator producing it.
        """
        self._check_open("support")

        def decorator(fn: Initializer[T]) -> Collaborator[T]:
            self._check_open("support")
            collaborator = Collaborator(fn, destructor, self)
            self.collaborators.append(collaborator)
            logger.debug(f"Declared {collaborator!r}")
            return collaborator

        if initializer is not None:
            return decorator(initializer)
        return decorator

    def subject(
        self,
        initializer: Initializer[T] | None = None,
        destructor: Destructor[T] | None = None,
    ) -> Collaborator[T] | Callable[[Initializer[T]], Collaborator[T]]:
        """
        Define a refinable subject under test.

        Alias of :meth:`support`; the name only documents intent.
        """
        return self.support(initializer, destructor)

    def refine(
        self, collaborator: Collaborator[T], refinement: Refinement[T] | None = None
    ) -> None | Callable[[Refinement[T]], Refinement[T]]:
        """
        Refine a collaborator for this context and its descendants.

        The refinement receives the run's ExecutionContext and the value
        produced so far, and returns the replacement value.

        Args:
            collaborator: A handle returned by support() or subject().
            refinement: The refinement function. When omitted, a decorator is
                returned instead.

        Raises:
            InvalidCollaboratorError: If ``collaborator`` is not a collaborator
                handle, or was declared outside this context's ancestry.
        """
        self._check_open("refine")
        if not isinstance(collaborator, Collaborator):
            raise InvalidCollaboratorError(
                f"Only support and subject collaborators can be refined, not {collaborator!r}"
            )
        if collaborator.declared_in not in self.ancestors:
            raise InvalidCollaboratorError(
                f"{collaborator!r} cannot be refined in {self.name!r}; only the "
                f"declaring context and its descendants can refine it"
            )

        def decorator(fn: Refinement[T]) -> Refinement[T]:
            self._check_open("refine")
            if not callable(fn):
                raise TypeError(f"Refinement must be callable, got {fn!r}")
            collaborator.add_refinement(self, fn)
            return fn

        if refinement is not None:
            decorator(refinement)
            return None
        return decorator

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def walk(self) -> Iterator[tuple[tuple[SpecNode, ...], Example]]:
        """
        Yield every example below this node in declaration order.

        Yields:
            ``(path, example)`` where ``path`` is the chain of contexts from
            this node down to the example's owning context.
        """
        yield from self._walk((self,))

    def _walk(
        self, path: tuple[SpecNode, ...]
    ) -> Iterator[tuple[tuple[SpecNode, ...], Example]]:
        for child in self.children:
            if isinstance(child, Example):
                yield path, child
            else:
                yield from child._walk((*path, child))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, children={len(self.children)})"


class RootNode(SpecNode):
    """
    The top of a specification, named after the described subject.

    Attributes:
        naming: The naming strategy used for every example in this tree.
        event_callback: Receives lifecycle events for every example run.
    """

    def __init__(
        self,
        name: str,
        naming: NamingStrategy | None = None,
        event_callback: EventCallback | None = None,
    ) -> None:
        super().__init__(name, None)
        self.naming: NamingStrategy = naming or naming_for(False)
        self.event_callback = event_callback

    @property
    def is_flat_namespace(self) -> bool:
        return self.naming.grouping_key is not None


class ChildNode(SpecNode):
    """A describe/context block nested inside another node."""

    def __init__(self, name: str, parent: SpecNode) -> None:
        super().__init__(name, parent)


class Example:
    """
    A leaf of the specification tree.

    Examples are immutable once registered and keep no state between runs;
    every call to :meth:`run` gets its own ExecutionContext.

    Attributes:
        description: The raw description passed to ``it``.
        display_name: The name reported to hosts (see nestspec.naming).
        node: The context that registered this example.
        body: The user-supplied example function.
        grouping_key: Non-None in flat mode; identical for every example of
            the tree.
    """

    __slots__ = ("description", "display_name", "node", "body", "grouping_key")

    def __init__(
        self,
        description: str,
        display_name: str,
        node: SpecNode,
        body: Body,
        grouping_key: str | None = None,
    ) -> None:
        self.description = description
        self.display_name = display_name
        self.node = node
        self.body = body
        self.grouping_key = grouping_key

    def run(self) -> None:
        """
        Run the example body under a fresh ExecutionContext.

        Every collaborator resolved during the run is released afterwards,
        whether the body succeeded or not.

        Raises:
            Exception: Whatever the body raised, after cleanup. Cleanup
                failures are attached to it as notes.
            CleanupError: If the body succeeded but cleanup failed. A cleanup
                BaseException that is not an Exception (KeyboardInterrupt,
                pytest outcomes) is re-raised as is after the sweep.
        """
        emitter = EventEmitter(self.node.root.event_callback, self.display_name)
        ctx = ExecutionContext(self, emitter)
        started = time.perf_counter()
        emitter.example_started(description=self.description)

        try:
            self.body(ctx)
        except BaseException as body_error:
            for error in ctx.release_all():
                logger.warning(
                    f"Cleanup after failed example {self.display_name!r} also "
                    f"failed: {type(error).__name__}: {error}"
                )
                body_error.add_note(
                    f"During cleanup of {self.display_name!r}: "
                    f"{type(error).__name__}: {error}"
                )
            emitter.example_failed(
                error=f"{type(body_error).__name__}: {body_error}",
                duration_ms=_elapsed_ms(started),
            )
            raise

        errors = ctx.release_all()
        if errors:
            cleanup_error = CleanupError(self.display_name, errors)
            emitter.example_failed(
                error=str(cleanup_error), duration_ms=_elapsed_ms(started)
            )
            # Interrupts and host outcomes (pytest.skip, pytest.fail) keep
            # their meaning once the sweep has finished.
            signal = next((e for e in errors if not isinstance(e, Exception)), None)
            if signal is not None:
                for error in errors:
                    if error is not signal:
                        signal.add_note(
                            f"During cleanup of {self.display_name!r}: "
                            f"{type(error).__name__}: {error}"
                        )
                raise signal
            raise cleanup_error from errors[0]

        emitter.example_passed(duration_ms=_elapsed_ms(started))

    def __call__(self) -> None:
        self.run()

    def __repr__(self) -> str:
        return f"Example({self.display_name!r})"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def subject_name(subject: Any) -> str:
    """Name used for the root container of a specification."""
    if isinstance(subject, str):
        return subject
    name = getattr(subject, "__name__", None)
    if isinstance(name, str):
        return name
    return type(subject).__name__


@overload
def describe(
    subject: Any,
    builder: Builder,
    *,
    flat: bool | None = None,
    on_event: EventCallback | None = None,
) -> RootNode: ...
@overload
def describe(
    subject: Any,
    builder: None = None,
    *,
    flat: bool | None = None,
    on_event: EventCallback | None = None,
) -> Callable[[Builder], RootNode]: ...


def describe(
    subject: Any,
    builder: Builder | None = None,
    *,
    flat: bool | None = None,
    on_event: EventCallback | None = None,
) -> RootNode | Callable[[Builder], RootNode]:
    """
    Create a specification describing ``subject``.

    Can be used directly or as a decorator::

        root = describe(Stack, build_stack_spec)

        @describe(Stack)
        def test_stack(spec):
            ...

    Args:
        subject: The described class, function or a plain string name.
        builder: Called immediately with the root node. When omitted, a
            decorator is returned instead.
        flat: Use flat example names. Defaults to the configured value
            (see nestspec.config.default_flat_namespace).
        on_event: Optional callback receiving lifecycle events of every
            example in the tree.

    Returns:
        The fully built root node, or a decorator producing it.
    """

    def decorator(fn: Builder) -> RootNode:
        is_flat = default_flat_namespace() if flat is None else flat
        root = RootNode(
            subject_name(subject),
            naming=naming_for(is_flat),
            event_callback=on_event,
        )
        logger.debug(f"Building specification {root.name!r} (flat={is_flat})")
        root._build(fn)
        return root

    if builder is not None:
        return decorator(builder)
    return decorator
