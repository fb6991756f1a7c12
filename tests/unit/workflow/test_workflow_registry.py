"""Unit tests for YAML parsing and the workflow registry."""

import io
import json
from pathlib import Path

import pytest

from orchestra_core.errors import (
    ConditionEvaluationError,
    DependencyCycleError,
    WorkflowAlreadyRegisteredError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)
from orchestra_core.logging import LogConfig, OrchestraLogger
from orchestra_core.types import ErrorHandlerPolicy, LogFormat
from orchestra_core.workflow import (
    BUILTIN_WORKFLOWS_DIR,
    AgentAction,
    CallableAction,
    NoOpAction,
    StepDefinition,
    WorkflowDefinition,
    WorkflowRegistry,
    parse_workflow_yaml,
)
from tests.mocks import returning


class Notifier:
    """Agent recording the tasks it receives."""

    def __init__(self):
        self.tasks = []

    def run(self, task, context):
        self.tasks.append(task)
        return "sent"


ACTIONS = {
    "validate_order": lambda ctx: {"valid": True},
    "charge_card": returning({"charged": True}, name="charge_card"),
    "fetch_metrics": lambda ctx: {"rows": 3},
    "summarize": lambda ctx: "summary",
}


class TestParseWorkflowYaml:
    """Tests for parse_workflow_yaml."""

    def test_parse_full_workflow(self, workflows_dir: Path):
        """Test fields, defaults and action binding."""
        workflow = parse_workflow_yaml(
            (workflows_dir / "order-pipeline.yaml").read_text(),
            actions=ACTIONS,
            agents={"notifier": Notifier()},
        )

        assert workflow.id == "order-pipeline"
        assert workflow.version == "2.1.0"
        assert workflow.error_handler == ErrorHandlerPolicy.ESCALATE
        assert workflow.timeout_seconds == 30
        assert workflow.tags == ("orders", "payments")

        validate, charge, notify = workflow.steps
        assert isinstance(validate.action, CallableAction)
        assert validate.action.name == "validate_order"
        assert charge.action is ACTIONS["charge_card"]
        assert charge.retry_count == 2
        assert charge.depends_on == ("validate",)
        assert isinstance(notify.action, AgentAction)
        assert notify.action.name == "agent:notifier"

    def test_depends_on_string_and_no_action(self):
        workflow = parse_workflow_yaml(
            "id: w\nsteps:\n  - id: a\n  - id: b\n    depends_on: a\n"
        )
        assert workflow.name == "w"
        assert isinstance(workflow.steps[0].action, NoOpAction)
        assert workflow.steps[1].depends_on == ("a",)

    @pytest.mark.parametrize(
        ("content", "fragment"),
        [
            ("steps: [unclosed", "Invalid YAML"),
            ("- a\n- b\n", "dictionary"),
            ("steps: []\n", "id or name"),
            ("id: w\nerror_handler: ignore\n", "Unknown error_handler"),
            ("id: w\nsteps: {a: 1}\n", "must be a list"),
            ("id: w\nsteps:\n  - action: x\n", "steps[0]"),
            ("id: w\nsteps:\n  - id: a\n    action: missing\n", "unknown action"),
            ("id: w\nsteps:\n  - id: a\n    agent: missing\n", "unknown agent"),
            ("id: w\nsteps:\n  - id: a\n    action: x\n    agent: y\n", "not both"),
        ],
    )
    def test_invalid_yaml(self, content, fragment):
        """Test that malformed definitions raise WORKFLOW_INVALID."""
        with pytest.raises(WorkflowValidationError) as exc_info:
            parse_workflow_yaml(content)
        assert exc_info.value.code == "WORKFLOW_INVALID"
        assert fragment in exc_info.value.detail


class TestWorkflowRegistry:
    """Tests for WorkflowRegistry."""

    def setup_method(self):
        self.output = io.StringIO()
        self.registry = WorkflowRegistry(
            logger=OrchestraLogger(LogConfig(format=LogFormat.JSON, output=self.output)),
            known_strategies=lambda: ["exponential-backoff", "fallback"],
            actions=ACTIONS,
            agents={"notifier": Notifier()},
        )

    def test_register_and_get(self):
        workflow = WorkflowDefinition(id="wf", name="WF", steps=(StepDefinition("a"),))
        result = self.registry.register(workflow)

        assert result.valid
        assert self.registry.get("wf") is workflow
        assert self.registry.get_or_raise("wf") is workflow
        assert "wf" in self.registry
        assert len(self.registry) == 1
        assert self.registry.get_entry("wf").source == "api"

    def test_duplicate_rejected_unless_replace(self):
        """Test that registered definitions are not silently overwritten."""
        first = WorkflowDefinition(id="wf", name="First")
        second = WorkflowDefinition(id="wf", name="Second")
        self.registry.register(first)

        with pytest.raises(WorkflowAlreadyRegisteredError):
            self.registry.register(second)
        assert self.registry.get("wf") is first

        self.registry.register(second, replace=True)
        assert self.registry.get("wf") is second

    def test_cycle_rejected_with_specific_error(self):
        """Test that a cyclic workflow raises DependencyCycleError and is not stored."""
        workflow = WorkflowDefinition(
            id="cyclic",
            name="Cyclic",
            steps=(StepDefinition("a", depends_on=("b",)), StepDefinition("b", depends_on=("a",))),
        )
        with pytest.raises(DependencyCycleError):
            self.registry.register(workflow)
        assert "cyclic" not in self.registry

    def test_bad_condition_rejected_with_step_context(self):
        workflow = WorkflowDefinition(
            id="cond", name="Cond", steps=(StepDefinition("a", condition="x >"),)
        )
        with pytest.raises(ConditionEvaluationError) as exc_info:
            self.registry.register(workflow)
        assert exc_info.value.step_id == "a"
        assert exc_info.value.workflow_id == "cond"

    def test_other_issues_rejected_as_invalid(self):
        workflow = WorkflowDefinition(
            id="bad", name="Bad", steps=(StepDefinition("a", strategy="teleport"),)
        )
        with pytest.raises(WorkflowValidationError) as exc_info:
            self.registry.register(workflow)
        assert "steps.a.strategy" in exc_info.value.detail

    def test_unregister_and_missing(self):
        self.registry.register(WorkflowDefinition(id="wf", name="WF"))
        assert self.registry.unregister("wf") is True
        assert self.registry.unregister("wf") is False
        with pytest.raises(WorkflowNotFoundError):
            self.registry.get_or_raise("wf")

    def test_register_from_yaml_binds_late_actions(self):
        """Test actions bound after construction are available to YAML."""
        self.registry.bind_action("ping", lambda ctx: "pong")
        workflow = self.registry.register_from_yaml(
            "id: ping\nsteps:\n  - id: p\n    action: ping\n"
        )
        assert workflow.steps[0].action.name == "ping"
        assert [w.id for w in self.registry.list_workflows()] == ["ping"]

    def test_register_from_yaml_binds_late_agents(self):
        reviewer = Notifier()
        self.registry.bind_agent("reviewer", reviewer)
        workflow = self.registry.register_from_yaml(
            "id: review\nsteps:\n  - id: r\n    agent: reviewer\n    task: Check the diff\n"
        )
        action = workflow.steps[0].action
        assert action.agent is reviewer
        assert action.task == "Check the diff"

    def test_load_directory(self, workflows_dir: Path, fixtures_dir: Path):
        """Test loading good files and logging the bad ones."""
        assert self.registry.load_directory(workflows_dir) == 2
        assert {w.id for w in self.registry.list_workflows()} == {
            "order-pipeline",
            "nightly-report",
        }
        entry = self.registry.get_entry("nightly-report")
        assert entry.source == "file"
        assert entry.workflow.source_path.name == "nightly-report.yml"

        assert self.registry.load_directory(fixtures_dir / "invalid") == 0
        failures = [
            json.loads(line)
            for line in self.output.getvalue().splitlines()
            if "Failed to load workflow" in line
        ]
        assert len(failures) == 2

    def test_load_missing_directory(self, tmp_path: Path):
        assert self.registry.load_directory(tmp_path / "absent") == 0


CATALOG_AGENTS = ("researcher", "analyst", "writer", "coder", "solver", "support")


class TestBuiltinCatalog:
    """Tests for the bundled workflow catalog."""

    def test_load_builtin_with_agents(self):
        """Test that every catalog workflow loads when its agents are bound."""
        registry = WorkflowRegistry(agents={name: Notifier() for name in CATALOG_AGENTS})

        assert registry.load_builtin() == 3
        assert {w.id for w in registry.list_workflows()} == {
            "research-report",
            "code-development",
            "support-escalation",
        }

        research = registry.get_or_raise("research-report")
        assert research.error_handler == ErrorHandlerPolicy.FALLBACK
        assert research.timeout_seconds == 90
        assert research.get_execution_order() == ["gather", "analyze", "report"]
        assert research.get_step("gather").retry_count == 2

        support = registry.get_or_raise("support-escalation")
        assert support.get_step("investigate").condition == 'issue_severity === "high"'
        assert registry.get_entry("code-development").workflow.source_path.parent == (
            BUILTIN_WORKFLOWS_DIR
        )

    def test_unbound_agents_are_skipped(self):
        """Test that catalog workflows needing missing agents are logged and skipped."""
        output = io.StringIO()
        registry = WorkflowRegistry(
            logger=OrchestraLogger(LogConfig(format=LogFormat.JSON, output=output)),
            agents={"coder": Notifier(), "solver": Notifier(), "writer": Notifier()},
        )

        assert registry.load_builtin() == 1
        assert [w.id for w in registry.list_workflows()] == ["code-development"]
        failures = [line for line in output.getvalue().splitlines() if "Failed to load" in line]
        assert len(failures) == 2
