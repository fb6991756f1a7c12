"""Property-based tests for ordering, pattern matching and conditions."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from orchestra_core.events import matches_pattern
from orchestra_core.workflow import StepDefinition, WorkflowDefinition, parse_condition

pytestmark = pytest.mark.property

segment = st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=8)
event_types = st.lists(segment, min_size=1, max_size=4).map(":".join)


@st.composite
def acyclic_workflows(draw):
    """Workflows whose steps only depend on steps listed before them."""
    count = draw(st.integers(min_value=1, max_value=12))
    ids = [f"s{i}" for i in range(count)]
    steps = []
    for i, step_id in enumerate(ids):
        deps = draw(st.lists(st.sampled_from(ids[:i]), max_size=3)) if i else []
        steps.append(StepDefinition(step_id, depends_on=tuple(deps)))
    order = draw(st.permutations(steps))
    return WorkflowDefinition(id="wf", name="wf", steps=tuple(order))


class TestExecutionOrderProperties:
    """Properties of the topological sort."""

    @given(acyclic_workflows())
    @settings(max_examples=75)
    def test_dependencies_precede_dependents(self, workflow):
        order = workflow.get_execution_order()
        position = {step_id: i for i, step_id in enumerate(order)}

        assert sorted(order) == sorted(step.id for step in workflow.steps)
        for step in workflow.steps:
            for dep in step.depends_on:
                assert position[dep] < position[step.id]

    @given(st.lists(segment, min_size=1, max_size=10, unique=True))
    def test_independent_steps_keep_listed_order(self, ids):
        workflow = WorkflowDefinition(
            id="wf", name="wf", steps=tuple(StepDefinition(i) for i in ids)
        )
        assert workflow.get_execution_order() == ids


class TestPatternProperties:
    """Properties of event pattern matching."""

    @given(event_types)
    def test_exact_and_global(self, event_type):
        assert matches_pattern(event_type, event_type)
        assert matches_pattern(event_type, "*")

    @given(event_types, st.data())
    def test_wildcard_segment(self, event_type, data):
        """Replacing any one segment with * still matches."""
        parts = event_type.split(":")
        index = data.draw(st.integers(min_value=0, max_value=len(parts) - 1))
        parts[index] = "*"
        assert matches_pattern(event_type, ":".join(parts))

    @given(event_types, segment)
    def test_extra_segment_never_matches(self, event_type, extra):
        assert not matches_pattern(f"{event_type}:{extra}", event_type)


class TestConditionProperties:
    """Properties of condition evaluation."""

    @given(st.integers(), st.integers())
    def test_ordering_matches_python(self, left, right):
        results = {"step": {"value": left}}
        assert parse_condition(f"results.step.value > {right}").evaluate({}, results) == (
            left > right
        )
        assert parse_condition(f"results.step.value <= {right}").evaluate({}, results) == (
            left <= right
        )

    @given(st.integers())
    def test_equality_negation(self, value):
        context = {"n": value}
        equal = parse_condition(f"n == {value}").evaluate(context, {})
        different = parse_condition(f"n != {value}").evaluate(context, {})
        assert equal is True
        assert different is False

    @given(st.booleans(), st.booleans())
    def test_boolean_operators(self, a, b):
        context = {"a": a, "b": b}
        assert parse_condition("a && b").evaluate(context, {}) == (a and b)
        assert parse_condition("a || b").evaluate(context, {}) == (a or b)
