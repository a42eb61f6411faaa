"""
Naming strategies for examples.

The strategy is chosen once per root specification:

- NestedNaming: an example is named by its own description; the host is
  expected to render the enclosing containers.
- FlatNaming: an example is named by every enclosing context followed by its
  description, and carries a constant grouping key so hosts that do not render
  nested containers can recognise and flatten it.

Container display names are the local name in both modes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from nestspec.node import SpecNode

FLAT_GROUPING_KEY = "flat"


@runtime_checkable
class NamingStrategy(Protocol):
    """Protocol for computing example display names."""

    grouping_key: str | None

    def example_name(self, node: SpecNode, description: str) -> str:
        """
        Compute the display name of an example.

        Args:
            node: The context node registering the example.
            description: The raw description passed to ``it``.

        Returns:
            The display name reported to the host.
        """
        ...


class NestedNaming:
    """Examples keep their plain description."""

    grouping_key: str | None = None

    def example_name(self, node: SpecNode, description: str) -> str:
        return description

    def __repr__(self) -> str:
        return "NestedNaming()"


class FlatNaming:
    """Examples are named by the full path of contexts leading to them."""

    grouping_key: str | None = FLAT_GROUPING_KEY

    def example_name(self, node: SpecNode, description: str) -> str:
        return " ".join([*(n.name for n in node.ancestors), description])

    def __repr__(self) -> str:
        return "FlatNaming()"


def naming_for(flat: bool) -> NamingStrategy:
    """Return the naming strategy for the given mode."""
    return FlatNaming() if flat else NestedNaming()
