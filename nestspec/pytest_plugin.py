"""
pytest integration: collect specifications from test modules.

Registered through the ``pytest11`` entry point. Any module-level attribute
whose name matches ``python_functions`` (``test*`` by default) and holds a
RootNode or a Suite is collected::

    @describe(Stack)
    def test_stack(spec):
        ...

Contexts become pytest collectors and examples become items, so the usual
``-k`` selection and node ids work. Specifications built in flat mode are
collected flat: every example sits directly under the root with its fully
qualified name.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

import pytest

from nestspec.node import Example, RootNode, SpecNode
from nestspec.suite import Suite

logger = logging.getLogger(__name__)


@pytest.hookimpl(tryfirst=True)
def pytest_pycollect_makeitem(
    collector: pytest.Module | pytest.Class, name: str, obj: Any
) -> list[SpecContainer] | None:
    if not isinstance(obj, (RootNode, Suite)):
        return None
    if not collector.funcnamefilter(name):
        return None

    roots = [obj] if isinstance(obj, RootNode) else obj.roots
    logger.debug(f"Collecting {len(roots)} specification(s) from {name!r}")
    return [
        SpecContainer.from_parent(collector, name=root.display_name, spec_node=root)
        for root in roots
    ]


class SpecContainer(pytest.Collector):
    """A describe/context block (or the root) of a specification."""

    def __init__(self, *, spec_node: SpecNode, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.spec_node = spec_node

    def collect(self) -> Iterator[pytest.Item | pytest.Collector]:
        if isinstance(self.spec_node, RootNode) and self.spec_node.is_flat_namespace:
            for _, example in self.spec_node.walk():
                yield SpecExample.from_parent(
                    self, name=example.display_name, example=example
                )
            return

        for child in self.spec_node.children:
            if isinstance(child, Example):
                yield SpecExample.from_parent(
                    self, name=child.display_name, example=child
                )
            else:
                yield SpecContainer.from_parent(
                    self, name=child.display_name, spec_node=child
                )


class SpecExample(pytest.Item):
    """A single example, run through Example.run()."""

    def __init__(self, *, example: Example, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.example = example

    def runtest(self) -> None:
        self.example.run()

    def reportinfo(self) -> tuple[Any, int | None, str]:
        code = getattr(self.example.body, "__code__", None)
        lineno = code.co_firstlineno - 1 if code is not None else None
        return self.path, lineno, self.example.display_name
