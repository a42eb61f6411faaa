"""Tests for nestspec.execution: per-run contexts and the cleanup protocol."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from nestspec import describe
from nestspec.errors import CleanupError, SpecUsageError
from nestspec.execution import ExecutionContext


def only_example(root):
    (example,) = [example for _, example in root.walk()]
    return example


class Resource:
    """A value exposing the closeable-resource capability."""

    def __init__(self, log):
        self.log = log

    def close(self):
        self.log.append("closed")


class TestDestructors:
    """Tests for explicit destructors."""

    def test_destructor_runs_after_example(self):
        runs = []

        def builder(spec):
            x = spec.support(lambda t: runs.append(1), destructor=lambda t, v: runs.append(2))

            def body(t):
                x(t)
                assert runs == [1]

            spec.it("stuff", body)

        only_example(describe(object, builder, flat=False)).run()

        assert sum(runs) == 3

    def test_destructor_not_called_when_unresolved(self):
        runs = []

        def builder(spec):
            spec.support(lambda t: runs.append(1), destructor=lambda t, v: runs.append(2))
            spec.it("stuff", lambda t: None)

        only_example(describe(object, builder, flat=False)).run()

        assert sum(runs) == 0

    def test_destructor_receives_refined_value(self):
        released = []

        def builder(spec):
            x = spec.support(lambda t: 1, destructor=lambda t, v: released.append(v))
            spec.refine(x, lambda t, v: v + 41)
            spec.it("stuff", lambda t: x(t))

        only_example(describe(object, builder, flat=False)).run()

        assert released == [42]

    def test_destructor_receives_same_context(self):
        contexts = []

        def builder(spec):
            x = spec.support(lambda t: None, destructor=lambda t, v: contexts.append(t))
            spec.it("stuff", lambda t: (contexts.append(t), x(t)))

        only_example(describe(object, builder, flat=False)).run()

        assert len(contexts) == 2
        assert contexts[0] is contexts[1]

    def test_destructor_called_once_despite_repeated_resolution(self):
        released = []

        def builder(spec):
            x = spec.support(lambda t: "v", destructor=lambda t, v: released.append(v))
            spec.it("stuff", lambda t: (x(t), x(t), t.force(x)))

        only_example(describe(object, builder, flat=False)).run()

        assert released == ["v"]

    def test_destructor_runs_for_none_value(self):
        released = []

        def builder(spec):
            x = spec.support(lambda t: None, destructor=lambda t, v: released.append(v))
            spec.it("stuff", lambda t: x(t))

        only_example(describe(object, builder, flat=False)).run()

        assert released == [None]

    def test_destructor_wins_over_close(self):
        log = []

        def builder(spec):
            x = spec.support(lambda t: Resource(log), destructor=lambda t, v: log.append("destroyed"))
            spec.it("stuff", lambda t: x(t))

        only_example(describe(object, builder, flat=False)).run()

        assert log == ["destroyed"]

    def test_collaborators_declared_in_ancestors_are_released(self):
        released = []

        def builder(spec):
            x = spec.support(lambda t: "outer", destructor=lambda t, v: released.append(v))

            @spec.context("nested")
            def _(nested):
                y = nested.support(lambda t: "inner", destructor=lambda t, v: released.append(v))
                nested.it("stuff", lambda t: (x(t), y(t)))

        only_example(describe(object, builder, flat=False)).run()

        assert sorted(released) == ["inner", "outer"]

    def test_released_in_reverse_resolution_order(self):
        released = []

        def builder(spec):
            base = spec.support(lambda t: "base", destructor=lambda t, v: released.append(v))
            top = spec.support(
                lambda t: f"top({base(t)})", destructor=lambda t, v: released.append(v)
            )
            spec.it("stuff", lambda t: top(t))

        only_example(describe(object, builder, flat=False)).run()

        assert released == ["top(base)", "base"]


class TestAutoClose:
    """Tests for closing values that expose close()."""

    def test_closes_closeable_value(self):
        log = []

        def builder(spec):
            x = spec.support(lambda t: Resource(log))
            spec.it("stuff", lambda t: x(t))

        only_example(describe(object, builder, flat=False)).run()

        assert log == ["closed"]

    def test_does_not_close_unresolved_value(self):
        log = []

        def builder(spec):
            spec.support(lambda t: Resource(log))
            spec.it("stuff", lambda t: None)

        only_example(describe(object, builder, flat=False)).run()

        assert log == []

    def test_closes_once_per_run(self):
        resource = MagicMock()

        def builder(spec):
            x = spec.support(lambda t: resource)
            spec.it("stuff", lambda t: (x(t), x(t)))

        only_example(describe(object, builder, flat=False)).run()

        resource.close.assert_called_once_with()

    def test_plain_values_left_alone(self):
        def builder(spec):
            x = spec.support(lambda t: {"plain": True})
            spec.it("stuff", lambda t: x(t))

        only_example(describe(object, builder, flat=False)).run()

    def test_non_callable_close_attribute_left_alone(self):
        candle = SimpleNamespace(open=1.0, close=2.0)

        def builder(spec):
            x = spec.support(lambda t: candle)
            spec.it("reads", lambda t: x(t).close)

        only_example(describe(object, builder, flat=False)).run()

        assert candle.close == 2.0

    def test_closes_file_objects(self, tmp_path):
        handles = []

        def builder(spec):
            x = spec.support(lambda t: open(tmp_path / "data.txt", "w"))
            spec.it("writes", lambda t: (handles.append(x(t)), x(t).write("hello")))

        only_example(describe(object, builder, flat=False)).run()

        assert handles[0].closed
        assert (tmp_path / "data.txt").read_text() == "hello"


class TestFailures:
    """Cleanup runs whatever happens in the body."""

    def test_cleanup_runs_when_body_fails(self):
        released = []

        def builder(spec):
            x = spec.support(lambda t: "v", destructor=lambda t, v: released.append(v))

            def body(t):
                x(t)
                raise AssertionError("expected failure")

            spec.it("fails", body)

        with pytest.raises(AssertionError, match="expected failure"):
            only_example(describe(object, builder, flat=False)).run()

        assert released == ["v"]

    def test_initializer_failure_still_releases_others(self):
        released = []

        def builder(spec):
            good = spec.support(lambda t: "good", destructor=lambda t, v: released.append(v))

            def explode(t):
                raise RuntimeError("initializer failed")

            bad = spec.support(explode, destructor=lambda t, v: released.append("bad"))

            def body(t):
                good(t)
                bad(t)

            spec.it("fails", body)

        with pytest.raises(RuntimeError, match="initializer failed"):
            only_example(describe(object, builder, flat=False)).run()

        assert released == ["good"]

    def test_body_failure_wins_over_cleanup_failure(self):
        def broken_destructor(t, v):
            raise OSError("cleanup failed")

        def builder(spec):
            x = spec.support(lambda t: "v", destructor=broken_destructor)

            def body(t):
                x(t)
                raise AssertionError("body failed")

            spec.it("fails twice", body)

        with pytest.raises(AssertionError, match="body failed") as excinfo:
            only_example(describe(object, builder, flat=False)).run()

        notes = getattr(excinfo.value, "__notes__", [])
        assert any("cleanup failed" in note for note in notes)

    def test_cleanup_failure_logged_when_body_fails(self, caplog):
        def broken_destructor(t, v):
            raise OSError("cleanup failed")

        def builder(spec):
            x = spec.support(lambda t: "v", destructor=broken_destructor)

            def body(t):
                x(t)
                raise AssertionError("body failed")

            spec.it("fails twice", body)

        with caplog.at_level(logging.WARNING, logger="nestspec"):
            with pytest.raises(AssertionError):
                only_example(describe(object, builder, flat=False)).run()

        assert "cleanup failed" in caplog.text

    def test_cleanup_failure_after_passing_body(self):
        def broken_destructor(t, v):
            raise OSError("cleanup failed")

        def builder(spec):
            x = spec.support(lambda t: "v", destructor=broken_destructor)
            spec.it("passes", lambda t: x(t))

        with pytest.raises(CleanupError) as excinfo:
            only_example(describe(object, builder, flat=False)).run()

        assert len(excinfo.value.errors) == 1
        assert isinstance(excinfo.value.__cause__, OSError)
        assert "passes" in str(excinfo.value)

    def test_failing_release_does_not_stop_sweep(self):
        released = []

        def broken_destructor(t, v):
            raise OSError("cleanup failed")

        def builder(spec):
            a = spec.support(lambda t: "a", destructor=lambda t, v: released.append(v))
            b = spec.support(lambda t: "b", destructor=broken_destructor)
            c = spec.support(lambda t: "c", destructor=lambda t, v: released.append(v))
            spec.it("passes", lambda t: (a(t), b(t), c(t)))

        with pytest.raises(CleanupError):
            only_example(describe(object, builder, flat=False)).run()

        assert sorted(released) == ["a", "c"]

    def test_pytest_outcome_in_destructor_does_not_hide_body_failure(self):
        released = []

        def failing_destructor(t, v):
            pytest.fail("destructor failed")

        def builder(spec):
            a = spec.support(lambda t: "a", destructor=lambda t, v: released.append(v))
            b = spec.support(lambda t: "b", destructor=failing_destructor)

            def body(t):
                a(t)
                b(t)
                raise AssertionError("body failed")

            spec.it("fails", body)

        with pytest.raises(AssertionError, match="body failed") as excinfo:
            only_example(describe(object, builder, flat=False)).run()

        assert released == ["a"]
        notes = getattr(excinfo.value, "__notes__", [])
        assert any("destructor failed" in note for note in notes)

    def test_pytest_outcome_in_destructor_after_passing_body(self):
        released = []

        def failing_destructor(t, v):
            pytest.fail("destructor failed")

        def builder(spec):
            a = spec.support(lambda t: "a", destructor=lambda t, v: released.append(v))
            b = spec.support(lambda t: "b", destructor=failing_destructor)
            spec.it("passes", lambda t: (a(t), b(t)))

        with pytest.raises(pytest.fail.Exception, match="destructor failed"):
            only_example(describe(object, builder, flat=False)).run()

        assert released == ["a"]

    def test_release_all_collects_base_exceptions(self):
        def interrupted(t, v):
            raise KeyboardInterrupt

        released = []
        contexts = []

        def builder(spec):
            a = spec.support(lambda t: "a", destructor=lambda t, v: released.append(v))
            b = spec.support(lambda t: "b", destructor=interrupted)

            def body(t):
                a(t)
                b(t)
                contexts.append(t)

            spec.it("resolves both", body)

        with pytest.raises(KeyboardInterrupt):
            only_example(describe(object, builder, flat=False)).run()

        assert released == ["a"]
        assert contexts[0].release_all() == []


class TestBuilderOperationsInsideExamples:
    """Building the tree from inside an example fails fast."""

    @pytest.mark.parametrize(
        "operation",
        ["describe", "context", "it", "support", "subject", "refine"],
    )
    def test_operation_rejected(self, operation):
        def builder(spec):
            spec.it("misbehaves", lambda t: getattr(t, operation)("x", lambda *_: None))

        with pytest.raises(SpecUsageError, match=f"{operation}\\(\\) inside an example"):
            only_example(describe(object, builder, flat=False)).run()


class TestExecutionContext:
    def test_fresh_context_per_run(self):
        contexts = []

        root = describe(object, lambda spec: spec.it("stuff", contexts.append), flat=False)
        example = only_example(root)
        example.run()
        example.run()

        assert contexts[0] is not contexts[1]
        assert all(isinstance(c, ExecutionContext) for c in contexts)

    def test_exposes_example_and_node(self):
        contexts = []

        root = describe(object, lambda spec: spec.it("stuff", contexts.append), flat=False)
        example = only_example(root)
        example.run()

        assert contexts[0].example is example
        assert contexts[0].node is root
        assert contexts[0].logger.name == "nestspec.example"

    def test_release_all_clears_memo(self):
        contexts = []
        handles = []

        def builder(spec):
            handles.append(spec.support(lambda t: 1))
            spec.it("stuff", lambda t: (handles[0](t), contexts.append(t)))

        only_example(describe(object, builder, flat=False)).run()

        assert not contexts[0].is_resolved(handles[0])
        assert contexts[0].release_all() == []
