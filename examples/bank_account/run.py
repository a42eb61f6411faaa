"""
Minimal Working Example: a bank account specification.

Usage:
    python examples/bank_account/run.py      # run by hand
    pytest examples/bank_account/run.py      # run through the pytest plugin

This demonstrates the core nestspec workflow:
- Describe a subject with nested contexts
- Declare collaborators with support/subject
- Specialise them in nested contexts with refine
- Let nestspec release every collaborator after each example
"""

import sys

from nestspec import describe


class Ledger:
    def __init__(self):
        self.entries = []
        self.open = True

    def record(self, amount):
        self.entries.append(amount)

    def close(self):
        self.open = False


class Account:
    def __init__(self, ledger, balance=0):
        self.ledger = ledger
        self.balance = balance

    def withdraw(self, amount):
        self.balance -= amount
        self.ledger.record(-amount)

    @property
    def overdrawn(self):
        return self.balance < 0


# The builder runs immediately; every `it` becomes an example whose body gets
# a fresh execution context `t`. Collaborators are built lazily inside `t`.
@describe(Account, flat=False)
def test_account(spec):
    # Ledger has close(), so it is closed after every example that used it.
    ledger = spec.support(lambda t: Ledger())
    account = spec.subject(lambda t: Account(ledger(t), balance=10))

    @spec.it("reports its opening balance")
    def _(t):
        assert account(t).balance == 10

    @spec.context("after a withdrawal")
    def _(spec):
        # Runs after the root initializer, only for examples in this context.
        @spec.refine(account)
        def _(t, acct):
            acct.withdraw(4)
            return acct

        @spec.it("records it in the ledger")
        def _(t):
            assert ledger(t).entries == [-4]

        @spec.context("that exceeds the balance")
        def _(spec):
            # Sees the account as already refined by the outer context.
            @spec.refine(account)
            def _(t, acct):
                acct.withdraw(10)
                return acct

            @spec.it("is overdrawn")
            def _(t):
                assert account(t).overdrawn
                assert account(t).balance == -4


if __name__ == "__main__":
    failures = 0
    for path, example in test_account.walk():
        name = " / ".join([*(node.name for node in path), example.description])
        try:
            example.run()
        except Exception as e:
            failures += 1
            print(f"FAIL  {name}: {e}")
        else:
            print(f"ok    {name}")
    sys.exit(1 if failures else 0)
