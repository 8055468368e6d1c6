"""Unit tests for git automation (scaffold_forge.vcs.repository).

Tests cover:
- _run_git (success, failure, timeout, secret redaction)
- parse_push_porcelain / parse_status_porcelain
- RepoStatus.describe
- RepoAutomation.ensure_repository (init, idempotence)
- stage / commit (argument shapes, missing repository)
- push (soft precondition failures, auth header, transport failure)
- commit_and_push (step order, soft failure surfaced)
- status
"""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from scaffold_forge.config import GitConfig
from scaffold_forge.errors import (
    ErrorKind,
    GitCommandError,
    PushError,
    RepositoryNotFound,
)
from scaffold_forge.vcs.repository import (
    CommitOutcome,
    PushResult,
    RepoAutomation,
    RepoStatus,
    _run_git,
    parse_push_porcelain,
    parse_status_porcelain,
)

RUN_GIT = "scaffold_forge.vcs.repository._run_git"


# ---------------------------------------------------------------------------
# Fixtures & helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_git_repo(tmp_path: Path) -> Path:
    """Directory with a `.git` dir so RepoAutomation accepts it.

    All git operations are mocked, so we don't need a real repo.
    """
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.fixture
def full_git_config() -> GitConfig:
    return GitConfig(
        username="bot",
        token="s3cret-token",
        branch="main",
        user_name="Forge Bot",
        user_email="bot@example.com",
    )


def _commands(mock: AsyncMock) -> list[tuple[str, ...]]:
    """Positional git arguments of every awaited call."""
    return [call.args for call in mock.await_args_list]


# ---------------------------------------------------------------------------
# _run_git
# ---------------------------------------------------------------------------


class TestRunGit:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_returns_stdout_stderr(self, mock_subprocess):
        proc = mock_subprocess(stdout="main\n", stderr="", returncode=0)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as exec_mock:
            stdout, stderr = await _run_git("branch", "--show-current")
        assert stdout == "main"
        assert stderr == ""
        assert exec_mock.call_args.args[:3] == ("git", "branch", "--show-current")
        assert exec_mock.call_args.kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, mock_subprocess):
        proc = mock_subprocess(stdout="partial", stderr="fatal: not a git repository", returncode=128)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(GitCommandError, match="Git command failed \\(exit 128\\)") as exc_info:
                await _run_git("status")
        assert exc_info.value.stderr == "fatal: not a git repository"
        assert exc_info.value.stdout == "partial"
        assert exc_info.value.kind is ErrorKind.GIT_ERROR

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, mock_subprocess):
        proc = mock_subprocess()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(GitCommandError, match="timed out after"):
                await _run_git("fetch", timeout=1)
        proc.kill.assert_called_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_secrets_redacted(self, mock_subprocess):
        proc = mock_subprocess(stderr="auth failed for hunter2", returncode=1)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(GitCommandError) as exc_info:
                await _run_git("-c", "http.extraHeader=hunter2", "push", secrets=("hunter2",))
        assert "hunter2" not in str(exc_info.value)
        assert "hunter2" not in exc_info.value.command
        assert "***" in exc_info.value.stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_strip_false_keeps_leading_spaces(self, mock_subprocess):
        proc = mock_subprocess(stdout=" M a.txt\n?? b.txt\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            stdout, _ = await _run_git("status", "--porcelain", strip=False)
        assert stdout == " M a.txt\n?? b.txt"


# ---------------------------------------------------------------------------
# Porcelain parsers
# ---------------------------------------------------------------------------


class TestParsePushPorcelain:
    @pytest.mark.unit
    def test_new_branch(self):
        output = "To /tmp/remote.git\n*\trefs/heads/main:refs/heads/main\t[new branch]\nDone"
        updates = parse_push_porcelain(output)
        assert len(updates) == 1
        assert updates[0].ref == "refs/heads/main"
        assert updates[0].status == "OK"
        assert updates[0].message == "[new branch]"

    @pytest.mark.unit
    def test_up_to_date_and_rejected(self):
        output = (
            "To https://git.example.com/x.git\n"
            "=\trefs/heads/main:refs/heads/main\t[up to date]\n"
            "!\trefs/heads/dev:refs/heads/dev\t[rejected] (non-fast-forward)\n"
            "Done"
        )
        statuses = [(u.ref, u.status) for u in parse_push_porcelain(output)]
        assert statuses == [
            ("refs/heads/main", "UP_TO_DATE"),
            ("refs/heads/dev", "REJECTED"),
        ]

    @pytest.mark.unit
    def test_fast_forward(self):
        output = " \trefs/heads/main:refs/heads/main\tabc123..def456"
        assert parse_push_porcelain(output)[0].status == "OK"

    @pytest.mark.unit
    def test_empty(self):
        assert parse_push_porcelain("") == []


class TestParseStatusPorcelain:
    @pytest.mark.unit
    def test_categories(self, tmp_path: Path):
        output = "A  new.py\nM  staged.py\n M worktree.py\nD  gone.py\n?? untracked.txt\nR  old.py -> renamed.py"
        status = parse_status_porcelain(output, tmp_path, "main")
        assert status.branch == "main"
        assert status.added == ["new.py", "renamed.py"]
        assert status.modified == ["staged.py", "worktree.py"]
        assert status.removed == ["gone.py"]
        assert status.untracked == ["untracked.txt"]
        assert not status.clean

    @pytest.mark.unit
    def test_clean(self, tmp_path: Path):
        assert parse_status_porcelain("", tmp_path, "main").clean


class TestRepoStatusDescribe:
    @pytest.mark.unit
    def test_clean_tree(self, tmp_path: Path):
        text = RepoStatus(path=tmp_path, branch="main").describe()
        assert text.startswith("Repository Status:\nBranch: main\n")
        assert "Working tree clean" in text

    @pytest.mark.unit
    def test_sections(self, tmp_path: Path):
        status = RepoStatus(path=tmp_path, branch="main", added=["a"], untracked=["u"])
        text = status.describe()
        assert "Added files:\n  + a\n" in text
        assert "Untracked files:\n  ? u\n" in text
        assert "Modified files:" not in text
        assert "Working tree clean" not in text

    @pytest.mark.unit
    def test_missing_repository(self, tmp_path: Path):
        text = RepoStatus(path=tmp_path, exists=False).describe()
        assert text == f"No Git repository found at: {tmp_path}"


# ---------------------------------------------------------------------------
# ensure_repository
# ---------------------------------------------------------------------------


class TestEnsureRepository:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_initialises_with_branch_and_remote(self, tmp_path: Path):
        repo_dir = tmp_path / "out"
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            message = await RepoAutomation(GitConfig(branch="trunk")).ensure_repository(
                repo_dir, "https://git.example.com/x.git"
            )
        assert message == f"Repository initialized successfully at: {repo_dir}"
        assert repo_dir.is_dir()
        assert _commands(mock) == [
            ("init", "--initial-branch=trunk"),
            ("remote", "add", "origin", "https://git.example.com/x.git"),
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_remote_when_url_empty(self, tmp_path: Path):
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            await RepoAutomation().ensure_repository(tmp_path / "out")
        assert _commands(mock) == [("init", "--initial-branch=main")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_repository_is_noop(self, fake_git_repo: Path):
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            message = await RepoAutomation().ensure_repository(fake_git_repo, "https://x")
        assert message == f"Repository already exists at: {fake_git_repo}"
        mock.assert_not_awaited()


# ---------------------------------------------------------------------------
# stage / commit
# ---------------------------------------------------------------------------


class TestStage:
    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("pattern", [".", ""])
    async def test_stage_all(self, fake_git_repo: Path, pattern: str):
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            message = await RepoAutomation().stage(pattern, fake_git_repo)
        assert message == "All files added to staging area"
        assert _commands(mock) == [("add", "--all")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stage_pattern(self, fake_git_repo: Path):
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            message = await RepoAutomation().stage("src/*.py", fake_git_repo)
        assert message == "Files matching 'src/*.py' added to staging area"
        assert _commands(mock) == [("add", "--", "src/*.py")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_repository(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFound, match="No Git repository found at"):
            await RepoAutomation().stage(".", tmp_path)


class TestCommit:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_commit_sets_identity_and_allows_empty(
        self, fake_git_repo: Path, full_git_config: GitConfig
    ):
        mock = AsyncMock(return_value=("", ""))
        with patch(RUN_GIT, mock):
            message = await RepoAutomation(full_git_config).commit("inventory service", fake_git_repo)

        assert message == "Successfully committed with message: inventory service"
        commands = _commands(mock)
        assert commands[0] == ("config", "user.name", "Forge Bot")
        assert commands[1] == ("config", "user.email", "bot@example.com")
        commit = commands[2]
        assert commit[0] == "commit"
        assert "--allow-empty" in commit
        assert "Forge Bot <bot@example.com>" in commit
        assert commit[-2:] == ("-m", "inventory service")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_repository(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFound):
            await RepoAutomation().commit("msg", tmp_path)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_git_failure_propagates(self, fake_git_repo: Path):
        async def _fail(*args, **kwargs):
            if args[0] == "commit":
                raise GitCommandError("Git command failed (exit 1): git commit", command="git commit")
            return "", ""

        with patch(RUN_GIT, side_effect=_fail):
            with pytest.raises(GitCommandError):
                await RepoAutomation().commit("msg", fake_git_repo)


# ---------------------------------------------------------------------------
# push
# ---------------------------------------------------------------------------


class TestPushPreconditions:
    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "remote, username, token, expected",
        [
            ("", "bot", "tok", ["remote URL"]),
            ("https://x", "", "tok", ["username"]),
            ("https://x", "bot", "", ["password/token"]),
            ("", "", "", ["remote URL", "username", "password/token"]),
            ("", "bot", "", ["remote URL", "password/token"]),
        ],
    )
    async def test_soft_failure_names_every_missing_setting(
        self, fake_git_repo: Path, remote: str, username: str, token: str, expected: list[str]
    ):
        mock = AsyncMock(return_value=("", ""))
        automation = RepoAutomation(GitConfig(username=username, token=token))
        with patch(RUN_GIT, mock):
            result = await automation.push(fake_git_repo, remote)

        assert isinstance(result, PushResult)
        assert result.ok is False
        assert result.failure is ErrorKind.PUSH_PRECONDITION
        lines = result.message.splitlines()
        assert len(lines) == len(expected)
        for line, word in zip(lines, expected):
            assert line.startswith("ERROR: No ")
            assert word in line
        mock.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_repository_still_raises(self, tmp_path: Path):
        with pytest.raises(RepositoryNotFound):
            await RepoAutomation().push(tmp_path, "")


class TestPush:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_push(self, fake_git_repo: Path, full_git_config: GitConfig):
        porcelain = "To https://git.example.com/x.git\n*\trefs/heads/main:refs/heads/main\t[new branch]\nDone"

        async def _git(*args, **kwargs):
            if "push" in args:
                return porcelain, ""
            return "https://git.example.com/x.git", ""

        mock = AsyncMock(side_effect=_git)
        with patch(RUN_GIT, mock):
            result = await RepoAutomation(full_git_config).push(
                fake_git_repo, "https://git.example.com/x.git"
            )

        assert result.ok is True
        assert result.failure is None
        assert [(u.ref, u.status) for u in result.updates] == [("refs/heads/main", "OK")]
        assert result.message.startswith("Push completed to: https://git.example.com/x.git")

        push_call = mock.await_args_list[-1]
        args = push_call.args
        expected = base64.b64encode(b"bot:s3cret-token").decode("ascii")
        assert args[:2] == ("-c", f"http.extraHeader=Authorization: Basic {expected}")
        assert args[2:] == ("push", "--porcelain", "origin", "main:main")
        assert "s3cret-token" in push_call.kwargs["secrets"]
        assert push_call.kwargs["timeout"] == full_git_config.push_timeout

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_adds_origin_when_missing(self, fake_git_repo: Path, full_git_config: GitConfig):
        async def _git(*args, **kwargs):
            if args[:2] == ("remote", "get-url"):
                raise GitCommandError("no such remote", command="git remote get-url origin")
            return "", ""

        mock = AsyncMock(side_effect=_git)
        with patch(RUN_GIT, mock):
            await RepoAutomation(full_git_config).push(fake_git_repo, "https://x/y.git")
        assert ("remote", "add", "origin", "https://x/y.git") in _commands(mock)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_transport_failure_raises_push_error(
        self, fake_git_repo: Path, full_git_config: GitConfig
    ):
        async def _git(*args, **kwargs):
            if "push" in args:
                raise GitCommandError(
                    "Git command failed (exit 128)",
                    command="git push",
                    stderr="fatal: unable to access 'https://x/': Could not resolve host",
                )
            return "", ""

        with patch(RUN_GIT, side_effect=_git):
            with pytest.raises(PushError, match="Could not resolve host") as exc_info:
                await RepoAutomation(full_git_config).push(fake_git_repo, "https://x/")
        assert exc_info.value.kind is ErrorKind.PUSH_ERROR


# ---------------------------------------------------------------------------
# commit_and_push
# ---------------------------------------------------------------------------


class TestCommitAndPush:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_initialises_fresh_directory(self, tmp_path: Path):
        repo_dir = tmp_path / "fresh"

        async def _git(*args, **kwargs):
            if args[0] == "init":
                (repo_dir / ".git").mkdir()
            return "", ""

        mock = AsyncMock(side_effect=_git)
        with patch(RUN_GIT, mock):
            outcome = await RepoAutomation().commit_and_push("first", ".", repo_dir, "")

        assert isinstance(outcome, CommitOutcome)
        assert outcome.initialized and outcome.staged and outcome.committed
        assert outcome.pushed is False
        assert outcome.push.failure is ErrorKind.PUSH_PRECONDITION
        names = [c[0] for c in _commands(mock)]
        assert names == ["init", "add", "config", "config", "commit"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_report_contains_each_step(self, fake_git_repo: Path):
        with patch(RUN_GIT, AsyncMock(return_value=("", ""))):
            outcome = await RepoAutomation().commit_and_push("msg", ".", fake_git_repo, "")
        report = outcome.report
        assert "All files added to staging area\n" in report
        assert "Successfully committed with message: msg\n" in report
        assert "ERROR: No remote URL configured" in report
        assert outcome.initialized is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stage_failure_aborts(self, fake_git_repo: Path):
        async def _git(*args, **kwargs):
            if args[0] == "add":
                raise GitCommandError("Git command failed (exit 128): git add --all")
            return "", ""

        mock = AsyncMock(side_effect=_git)
        with patch(RUN_GIT, mock):
            with pytest.raises(GitCommandError):
                await RepoAutomation().commit_and_push("msg", ".", fake_git_repo, "")
        assert [c[0] for c in _commands(mock)] == ["add"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_full_success(self, fake_git_repo: Path, full_git_config: GitConfig):
        async def _git(*args, **kwargs):
            if "push" in args:
                return "=\trefs/heads/main:refs/heads/main\t[up to date]", ""
            return "", ""

        with patch(RUN_GIT, AsyncMock(side_effect=_git)):
            outcome = await RepoAutomation(full_git_config).commit_and_push(
                "msg", ".", fake_git_repo, "https://x/y.git"
            )
        assert outcome.pushed is True
        assert [u.status for u in outcome.push_updates] == ["UP_TO_DATE"]


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


class TestStatus:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_repository(self, tmp_path: Path):
        with patch(RUN_GIT, AsyncMock()) as mock:
            status = await RepoAutomation().status(tmp_path)
        assert status.exists is False
        mock.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parses_branch_and_changes(self, fake_git_repo: Path):
        async def _git(*args, **kwargs):
            if args[0] == "symbolic-ref":
                return "main", ""
            return " M app.py\n?? notes.txt", ""

        with patch(RUN_GIT, AsyncMock(side_effect=_git)):
            status = await RepoAutomation().status(fake_git_repo)
        assert status.branch == "main"
        assert status.modified == ["app.py"]
        assert status.untracked == ["notes.txt"]
