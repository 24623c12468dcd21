"""Unit tests for TaskDecomposer."""

import pytest

from boss_agent.core.config import DecompositionConfig
from boss_agent.core.task import AgentRole, Strategy, TaskType
from boss_agent.core.task_decomposer import (
    TEMPLATES,
    TaskDecomposer,
    template_roles,
    validate_subtasks,
)
from boss_agent.errors import DecompositionError
from tests.unit.delegation_fixtures import _make_analysis, _make_subtask


@pytest.fixture
def decomposer():
    return TaskDecomposer()


def _deps(decomposition):
    return {s.id: s.dependencies for s in decomposition.subtasks}


class TestTemplates:
    """Canonical chains per task type."""

    def test_feature_chain(self, decomposer):
        result = decomposer.decompose("Dark mode", "Add a theme toggle", _make_analysis())

        assert [s.required_agent_role for s in result.subtasks] == [
            AgentRole.CODE_WRITER,
            AgentRole.TEST_WRITER,
            AgentRole.DOCUMENTATION,
            AgentRole.REVIEWER,
        ]
        assert _deps(result) == {
            "PROJ-1-sub1": [],
            "PROJ-1-sub2": ["PROJ-1-sub1"],
            "PROJ-1-sub3": ["PROJ-1-sub1"],
            "PROJ-1-sub4": ["PROJ-1-sub1", "PROJ-1-sub2"],
        }
        # 4 edges over 4 subtasks
        assert result.strategy == Strategy.SEQUENTIAL

    def test_bug_chain_is_linear(self, decomposer):
        result = decomposer.decompose("Login crash", None, _make_analysis(task_type=TaskType.BUG))

        assert [s.required_agent_role for s in result.subtasks] == [
            AgentRole.DEBUGGER,
            AgentRole.CODE_WRITER,
            AgentRole.TEST_WRITER,
        ]
        assert _deps(result) == {
            "PROJ-1-sub1": [],
            "PROJ-1-sub2": ["PROJ-1-sub1"],
            "PROJ-1-sub3": ["PROJ-1-sub2"],
        }
        assert result.strategy == Strategy.SEQUENTIAL

    def test_test_type_is_single_parallel_stage(self, decomposer):
        result = decomposer.decompose("Cover parser", None, _make_analysis(task_type=TaskType.TEST))

        assert len(result.subtasks) == 1
        assert result.subtasks[0].required_agent_role == AgentRole.TEST_WRITER
        assert result.strategy == Strategy.PARALLEL

    def test_mixed_falls_back_to_general_chain(self, decomposer):
        result = decomposer.decompose("Misc", None, _make_analysis(task_type=TaskType.MIXED))
        assert result.subtasks[0].required_agent_role == AgentRole.GENERAL
        assert result.subtasks[-1].required_agent_role == AgentRole.REVIEWER

    @pytest.mark.parametrize("task_type", list(TaskType))
    def test_every_template_only_depends_on_earlier_stages(self, decomposer, task_type):
        result = decomposer.decompose(
            "Anything", None, _make_analysis(task_type=task_type, estimated_subtask_count=8)
        )
        seen = set()
        for subtask in result.subtasks:
            assert set(subtask.dependencies) <= seen
            seen.add(subtask.id)

    def test_template_roles_cover_padding(self):
        roles = template_roles()
        assert AgentRole.GENERAL in roles
        assert set(roles) >= {stage.role for stage in TEMPLATES[TaskType.FEATURE]}


class TestPadding:
    def test_refactor_padded_to_estimate(self, decomposer):
        analysis = _make_analysis(task_type=TaskType.REFACTOR, estimated_subtask_count=5)

        result = decomposer.decompose("Auth", "Restructure auth", analysis)

        assert _deps(result) == {
            "PROJ-1-sub1": [],
            "PROJ-1-sub2": ["PROJ-1-sub1"],
            "PROJ-1-sub3": ["PROJ-1-sub1", "PROJ-1-sub2"],
            "PROJ-1-sub4": [],
            "PROJ-1-sub5": ["PROJ-1-sub4"],
        }
        padded = result.subtasks[3:]
        assert all(s.required_agent_role == AgentRole.GENERAL for s in padded)
        assert all(s.complexity == 5 for s in padded)
        # 4 edges over 5 subtasks
        assert result.strategy == Strategy.SEQUENTIAL

    def test_docs_padding_gives_hybrid(self, decomposer):
        analysis = _make_analysis(task_type=TaskType.DOCS, estimated_subtask_count=3)

        result = decomposer.decompose("Guide", None, analysis)

        # 1 edge over 3 subtasks sits between the two density thresholds
        assert len(result.subtasks) == 3
        assert result.strategy == Strategy.HYBRID

    def test_estimate_below_template_size_keeps_template(self, decomposer):
        result = decomposer.decompose("Dark mode", None, _make_analysis(estimated_subtask_count=2))
        assert len(result.subtasks) == 4

    def test_max_subtasks_caps_padding(self):
        decomposer = TaskDecomposer(DecompositionConfig(max_subtasks=5))
        analysis = _make_analysis(task_type=TaskType.TEST, estimated_subtask_count=8)
        assert len(decomposer.decompose("Cover", None, analysis).subtasks) == 5


class TestDetails:
    def test_estimated_minutes(self, decomposer):
        # 7 + 5 + 3 + 4 complexity points at 5 minutes each
        result = decomposer.decompose("Dark mode", None, _make_analysis())
        assert result.estimated_minutes == 95

    def test_parent_id_overrides_prefix(self, decomposer):
        result = decomposer.decompose("Dark mode", None, _make_analysis(), parent_id="run-9")
        assert result.subtasks[0].id == "run-9-sub1"

    def test_prefix_defaults_to_task(self, decomposer):
        result = decomposer.decompose("Dark mode", None, _make_analysis(work_item_key=None))
        assert result.subtasks[0].id == "task-sub1"

    def test_description_is_truncated(self, decomposer):
        result = decomposer.decompose("Dark mode", "x" * 500, _make_analysis())
        assert len(result.subtasks[0].description) == 200

    def test_titles_include_work_item_title(self, decomposer):
        result = decomposer.decompose("Dark mode", None, _make_analysis())
        assert result.subtasks[0].title == "Implement Dark mode"


class TestChooseStrategy:
    def test_no_edges_is_parallel(self, decomposer):
        subtasks = [_make_subtask("a"), _make_subtask("b")]
        assert decomposer.choose_strategy(subtasks) == Strategy.PARALLEL

    def test_sparse_edges_are_parallel(self, decomposer):
        subtasks = [_make_subtask(str(i)) for i in range(10)]
        subtasks.append(_make_subtask("x", deps=["0", "1"]))
        assert decomposer.choose_strategy(subtasks) == Strategy.PARALLEL

    def test_dense_edges_are_sequential(self, decomposer):
        subtasks = [_make_subtask("a"), _make_subtask("b", deps=["a"]), _make_subtask("c", deps=["a", "b"])]
        assert decomposer.choose_strategy(subtasks) == Strategy.SEQUENTIAL

    def test_empty_list(self, decomposer):
        assert decomposer.choose_strategy([]) == Strategy.PARALLEL


class TestValidateSubtasks:
    def test_duplicate_ids(self):
        with pytest.raises(DecompositionError, match="Duplicate"):
            validate_subtasks([_make_subtask("a"), _make_subtask("a")])

    def test_dangling_dependency(self):
        with pytest.raises(DecompositionError, match="unknown subtask ghost"):
            validate_subtasks([_make_subtask("a", deps=["ghost"])])

    def test_self_dependency(self):
        with pytest.raises(DecompositionError, match="itself"):
            validate_subtasks([_make_subtask("a", deps=["a"])])

    def test_cycles_are_not_rejected_here(self):
        validate_subtasks([_make_subtask("a", deps=["b"]), _make_subtask("b", deps=["a"])])
