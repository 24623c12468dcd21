"""Tests for WorkSessionFactory and identifier validators."""

import pytest

from boss_agent.core.task import AgentRole
from boss_agent.core.work_session import WorkSessionFactory
from boss_agent.utils.validators import slugify, validate_branch_name, validate_identifier
from tests.unit.delegation_fixtures import _git, _init_git_repo, _make_subtask


class TestWorkSessionFactory:
    def test_isolated_branch_per_subtask(self):
        factory = WorkSessionFactory()
        session = factory.create(_make_subtask("PROJ-1-sub1"), "boss/proj-1-login")

        assert session.branch_name == "boss/proj-1-login-proj-1-sub1"
        assert session.subtask_id == "PROJ-1-sub1"
        assert session.id.startswith("ws-PROJ-1-sub1-")
        assert session.working_dir is None

    @pytest.mark.parametrize("role", [AgentRole.REVIEWER, AgentRole.DOCUMENTATION])
    def test_shared_roles_use_parent_branch(self, role):
        factory = WorkSessionFactory()
        subtask = _make_subtask("s1", required_agent_role=role)
        assert factory.branch_for(subtask, "boss/x") == "boss/x"

    def test_isolation_can_be_disabled(self):
        factory = WorkSessionFactory(isolated_branches=False)
        assert factory.branch_for(_make_subtask("s1"), "boss/x") == "boss/x"

    def test_no_parent_branch(self):
        assert WorkSessionFactory().branch_for(_make_subtask("s1"), None) is None

    def test_unsafe_subtask_id_is_rejected(self):
        with pytest.raises(ValueError):
            WorkSessionFactory().create(_make_subtask("../etc"))


class TestWorktrees:
    @pytest.fixture
    def repo(self, tmp_path):
        return _init_git_repo(tmp_path / "repo")

    @pytest.fixture
    def factory(self, repo, tmp_path):
        return WorkSessionFactory(root=tmp_path / "worktrees", repository=repo)

    def test_no_repository_means_no_checkout(self, tmp_path):
        session = WorkSessionFactory(root=tmp_path).create(_make_subtask("s1"), "boss/x")
        assert session.working_dir is None
        assert list(tmp_path.iterdir()) == []

    def test_each_subtask_gets_its_own_checkout(self, factory, tmp_path):
        first = factory.create(_make_subtask("s1"), "boss/p")
        second = factory.create(_make_subtask("s2"), "boss/p")

        assert first.working_dir != second.working_dir
        for session in (first, second):
            assert session.working_dir.parent == (tmp_path / "worktrees").resolve()
            assert (session.working_dir / ".git").is_file()
            assert (session.working_dir / "README.md").exists()
        assert _git(first.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "boss/p-s1"
        assert _git(second.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "boss/p-s2"

    def test_dependent_starts_from_dependency_branch(self, factory):
        first = factory.create(_make_subtask("s1"), "boss/p")
        (first.working_dir / "model.py").write_text("x = 1\n")
        _git(first.working_dir, "add", "model.py")
        _git(first.working_dir, "commit", "-q", "-m", "Add model")

        second = factory.create(_make_subtask("s2", deps=["s1"]), "boss/p")

        assert (second.working_dir / "model.py").read_text() == "x = 1\n"

    def test_new_branch_starts_from_existing_parent(self, factory, repo):
        _git(repo, "checkout", "-q", "-b", "boss/p")
        (repo / "parent.txt").write_text("parent\n")
        _git(repo, "add", "parent.txt")
        _git(repo, "commit", "-q", "-m", "Parent work")

        session = factory.create(_make_subtask("s1"), "boss/p")

        assert (session.working_dir / "parent.txt").exists()

    def test_shared_role_checks_out_parent_next_to_siblings(self, factory, repo):
        _git(repo, "branch", "boss/p")
        reviewer = _make_subtask("r1", required_agent_role=AgentRole.REVIEWER)

        first = factory.create(reviewer, "boss/p")
        second = factory.create(reviewer, "boss/p")

        assert _git(first.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "boss/p"
        assert _git(second.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "boss/p"

    def test_detached_without_parent_branch(self, factory):
        session = factory.create(_make_subtask("s1"))
        assert session.branch_name is None
        assert _git(session.working_dir, "rev-parse", "--abbrev-ref", "HEAD") == "HEAD"

    def test_release_removes_clean_worktree_and_keeps_branch(self, factory, repo):
        session = factory.create(_make_subtask("s1"), "boss/p")

        assert factory.release(session) is True
        assert not session.working_dir.exists()
        assert _git(repo, "branch", "--list", "boss/p-s1")

    def test_release_keeps_dirty_worktree(self, factory):
        session = factory.create(_make_subtask("s1"), "boss/p")
        (session.working_dir / "README.md").write_text("changed\n")

        assert factory.release(session) is False
        assert session.working_dir.exists()

    def test_bad_repository_raises(self, tmp_path):
        factory = WorkSessionFactory(root=tmp_path / "wt", repository=tmp_path)
        with pytest.raises(RuntimeError, match="Could not create worktree for s1"):
            factory.create(_make_subtask("s1"), "boss/p")


class TestValidators:
    def test_slugify(self):
        assert slugify("Fix: Login -- Crash!") == "fix-login-crash"
        assert slugify("a" * 80, max_length=10) == "a" * 10
        assert slugify("!!!") == ""

    @pytest.mark.parametrize("name", ["", "/lead", "trail/", "a..b", "has space", "x.lock", "a@{b"])
    def test_invalid_branch_names(self, name):
        with pytest.raises(ValueError):
            validate_branch_name(name)

    def test_valid_branch_name(self):
        assert validate_branch_name("boss/proj-1_x.y") == "boss/proj-1_x.y"

    @pytest.mark.parametrize("value", ["", "a/b", "..", "x" * 129])
    def test_invalid_identifiers(self, value):
        with pytest.raises(ValueError):
            validate_identifier(value)
