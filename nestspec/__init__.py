"""
nestspec: nested, RSpec-style specifications with scoped collaborators.

A specification is a tree of contexts and examples. Collaborators declared
with ``support``/``subject`` are built lazily, once per example run, and can
be refined by nested contexts. Every resolved collaborator is released after
its example, whether the example passed or failed.

Example:
    from nestspec import describe

    @describe(Account)
    def test_account(spec):
        ledger = spec.support(lambda t: Ledger(), destructor=lambda t, lg: lg.flush())
        account = spec.subject(lambda t: Account(ledger(t), balance=10))

        @spec.it("reports its balance")
        def _(t):
            assert account(t).balance == 10

        @spec.context("when overdrawn")
        def _(spec):
            @spec.refine(account)
            def _(t, acct):
                acct.withdraw(20)
                return acct

            @spec.it("is flagged")
            def _(t):
                assert account(t).overdrawn

    # Run by the bundled pytest plugin, or by hand:
    for path, example in test_account.walk():
        example.run()
"""

from importlib.metadata import PackageNotFoundError, version

from nestspec.collaborator import Collaborator, SupportsClose
from nestspec.config import NestspecConfig, default_flat_namespace
from nestspec.errors import (
    CleanupError,
    CollaboratorCycleError,
    InvalidCollaboratorError,
    NestspecError,
    SpecUsageError,
)
from nestspec.events import Event, EventCallback, EventKind
from nestspec.execution import ExecutionContext
from nestspec.naming import FlatNaming, NamingStrategy, NestedNaming
from nestspec.node import ChildNode, Example, RootNode, SpecNode, describe
from nestspec.suite import Suite

try:
    __version__ = version("nestspec")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    # Version
    "__version__",
    # Building
    "describe",
    "Suite",
    "SpecNode",
    "RootNode",
    "ChildNode",
    "Example",
    # Collaborators
    "Collaborator",
    "SupportsClose",
    "ExecutionContext",
    # Naming
    "NamingStrategy",
    "NestedNaming",
    "FlatNaming",
    # Config
    "NestspecConfig",
    "default_flat_namespace",
    # Events
    "Event",
    "EventKind",
    "EventCallback",
    # Errors
    "NestspecError",
    "SpecUsageError",
    "InvalidCollaboratorError",
    "CollaboratorCycleError",
    "CleanupError",
]
