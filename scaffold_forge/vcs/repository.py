"""Git repository automation for generated output.

Ensures an output root is a git working tree linked to ``origin``, then stages,
commits and pushes it.  Every operation shells out to the ``git`` CLI through
``asyncio`` subprocesses with a per-command timeout.

Push preconditions (remote URL, username, token) are checked before any
network traffic; a missing value is reported as a ``PushResult`` with
``ok=False`` rather than raised, so a generated project that could not be
published is still returned to the caller.
"""

from __future__ import annotations

import asyncio
import base64
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape

from scaffold_forge.config import GitConfig
from scaffold_forge.errors import (
    ErrorKind,
    GitCommandError,
    PushError,
    RepositoryNotFound,
)
from scaffold_forge.utils import console

REMOTE_NAME = "origin"
STAGE_ALL = "."

# ``git push --porcelain`` flag column -> status reported per ref.
_PUSH_FLAG_STATUS: dict[str, str] = {
    " ": "OK",
    "+": "OK",
    "-": "OK",
    "*": "OK",
    "=": "UP_TO_DATE",
    "!": "REJECTED",
}

_PORCELAIN_REF_LINE = re.compile(r"^(?P<flag>.)\t(?P<refs>[^\t]+)\t(?P<summary>.*)$")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class PushUpdate:
    """Outcome of a push for one remote ref."""

    ref: str
    status: str
    message: str = ""


@dataclass
class PushResult:
    """Outcome of :meth:`RepoAutomation.push`.

    ``ok`` is ``False`` only for precondition failures, which carry
    ``failure=ErrorKind.PUSH_PRECONDITION``; transport failures raise instead.
    """

    ok: bool
    message: str
    updates: list[PushUpdate] = field(default_factory=list)
    failure: ErrorKind | None = None


@dataclass
class CommitOutcome:
    """Combined outcome of :meth:`RepoAutomation.commit_and_push`."""

    initialized: bool = False
    staged: bool = False
    committed: bool = False
    push: PushResult | None = None
    messages: list[str] = field(default_factory=list)

    @property
    def pushed(self) -> bool:
        return self.push is not None and self.push.ok

    @property
    def push_updates(self) -> list[PushUpdate]:
        return self.push.updates if self.push else []

    @property
    def report(self) -> str:
        """Human-readable report of every step, one message per line."""
        return "".join(f"{m}\n" for m in self.messages)


@dataclass
class RepoStatus:
    """Working-tree status of a repository."""

    path: Path
    exists: bool = True
    branch: str = ""
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.added or self.modified or self.untracked or self.removed)

    def describe(self) -> str:
        """Render the status as a plain-text report."""
        if not self.exists:
            return f"No Git repository found at: {self.path}"

        lines = ["Repository Status:", f"Branch: {self.branch}", ""]
        for title, marker, paths in (
            ("Added files:", "+", self.added),
            ("Modified files:", "M", self.modified),
            ("Untracked files:", "?", self.untracked),
            ("Removed files:", "-", self.removed),
        ):
            if paths:
                lines.append(title)
                lines.extend(f"  {marker} {p}" for p in paths)
        if self.clean:
            lines.append("Working tree clean")
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# git subprocess helper
# ---------------------------------------------------------------------------


def _redact(text: str, secrets: tuple[str, ...]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


async def _run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: float = 60.0,
    secrets: tuple[str, ...] = (),
    strip: bool = True,
) -> tuple[str, str]:
    """Run a git command asynchronously and return (stdout, stderr).

    Interactive credential prompts are disabled.  Any value in *secrets* is
    masked in error messages.

    Raises GitCommandError if the command exits with a non-zero code or
    exceeds *timeout*.
    """
    cmd = ["git"] + list(args)
    cmd_str = _redact(" ".join(cmd), secrets)
    env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=env,
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        raise GitCommandError(
            f"Git command timed out after {timeout}s: {cmd_str}",
            command=cmd_str,
        )

    stdout = stdout_bytes.decode("utf-8", errors="replace")
    stderr = _redact(stderr_bytes.decode("utf-8", errors="replace").strip(), secrets)
    stdout = stdout.strip() if strip else stdout.rstrip("\n")

    if process.returncode != 0:
        raise GitCommandError(
            f"Git command failed (exit {process.returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
            stdout=stdout,
        )

    return stdout, stderr


def parse_push_porcelain(output: str) -> list[PushUpdate]:
    """Parse ``git push --porcelain`` output into per-ref updates.

    Ref lines look like ``<flag>\\t<from>:<to>\\t<summary>``; the ``To <url>``
    header and ``Done`` trailer are ignored.
    """
    updates: list[PushUpdate] = []
    for line in output.splitlines():
        match = _PORCELAIN_REF_LINE.match(line)
        if not match:
            continue
        refs = match.group("refs")
        remote_ref = refs.split(":", 1)[1] if ":" in refs else refs
        updates.append(
            PushUpdate(
                ref=remote_ref,
                status=_PUSH_FLAG_STATUS.get(match.group("flag"), "UNKNOWN"),
                message=match.group("summary").strip(),
            )
        )
    return updates


def parse_status_porcelain(output: str, path: Path, branch: str) -> RepoStatus:
    """Parse ``git status --porcelain`` (v1) output into a :class:`RepoStatus`."""
    status = RepoStatus(path=path, branch=branch)
    for line in output.splitlines():
        if len(line) < 4:
            continue
        code, name = line[:2], line[3:]
        if code == "??":
            status.untracked.append(name)
            continue
        if " -> " in name:
            name = name.split(" -> ", 1)[1]
        if "D" in code:
            status.removed.append(name)
        elif code[0] in "AR":
            status.added.append(name)
        elif "M" in code:
            status.modified.append(name)
    return status


# ---------------------------------------------------------------------------
# RepoAutomation
# ---------------------------------------------------------------------------


class RepoAutomation:
    """Stage, commit and push automation for generated output directories.

    Identity, credentials and the branch come from :class:`GitConfig`; the
    repository path and remote URL are passed per call so one instance can
    serve several output roots.
    """

    def __init__(self, config: GitConfig | None = None) -> None:
        self.config = config or GitConfig()

    @staticmethod
    def has_repository(path: str | Path) -> bool:
        return (Path(path) / ".git").exists()

    def _require_repository(self, path: str | Path) -> Path:
        repo = Path(path)
        if not self.has_repository(repo):
            raise RepositoryNotFound(str(repo))
        return repo

    # -- Initialisation ----------------------------------------------------

    async def ensure_repository(self, path: str | Path, remote_url: str = "") -> str:
        """Initialise a repository at *path* unless one already exists.

        A new repository starts on the configured branch and, when
        *remote_url* is non-empty, gets it as ``origin``.  An existing
        repository is left untouched.

        Returns:
            A human-readable description of what happened.
        """
        repo = Path(path)
        if self.has_repository(repo):
            return f"Repository already exists at: {repo}"

        repo.mkdir(parents=True, exist_ok=True)
        await _run_git(
            "init", f"--initial-branch={self.config.branch}",
            cwd=repo, timeout=self.config.timeout,
        )
        console.print(f"  [cyan]Initialized new Git repository at[/cyan] [bold]{repo}[/bold]")

        if remote_url:
            await _run_git(
                "remote", "add", REMOTE_NAME, remote_url,
                cwd=repo, timeout=self.config.timeout,
            )
            console.print(f"  [cyan]Added remote '{REMOTE_NAME}':[/cyan] {escape(remote_url)}")

        return f"Repository initialized successfully at: {repo}"

    # -- Stage / commit ----------------------------------------------------

    async def stage(self, pattern: str, path: str | Path) -> str:
        """Stage changes in the repository at *path*.

        An empty *pattern* or ``"."`` stages every change, deletions included;
        any other value stages only the matching paths.

        Raises:
            RepositoryNotFound: If *path* is not a git working tree.
        """
        repo = self._require_repository(path)
        if not pattern or pattern == STAGE_ALL:
            await _run_git("add", "--all", cwd=repo, timeout=self.config.timeout)
            return "All files added to staging area"

        await _run_git("add", "--", pattern, cwd=repo, timeout=self.config.timeout)
        return f"Files matching '{pattern}' added to staging area"

    async def commit(self, message: str, path: str | Path) -> str:
        """Commit the staged changes, allowing an empty commit.

        The configured author/committer identity is written to the
        repository config on every call.

        Raises:
            RepositoryNotFound: If *path* is not a git working tree.
        """
        repo = self._require_repository(path)
        name, email = self.config.user_name, self.config.user_email

        await _run_git("config", "user.name", name, cwd=repo, timeout=self.config.timeout)
        await _run_git("config", "user.email", email, cwd=repo, timeout=self.config.timeout)
        await _run_git(
            "commit", "--allow-empty", "--no-gpg-sign",
            "--author", f"{name} <{email}>",
            "-m", message,
            cwd=repo, timeout=self.config.timeout,
        )

        console.print(
            f"  [green]Committed[/green] {escape(message)!r} (by {escape(name)} <{escape(email)}>)"
        )
        return f"Successfully committed with message: {message}"

    # -- Push --------------------------------------------------------------

    def _missing_push_settings(self, remote_url: str) -> list[str]:
        missing: list[str] = []
        if not remote_url:
            missing.append("No remote URL configured. Please set the git remote URL in configuration")
        if not self.config.username:
            missing.append("No username configured. Please set git username in configuration")
        if not self.config.token:
            missing.append("No password/token configured. Please set git token in configuration")
        return missing

    def _auth_header(self) -> str:
        raw = f"{self.config.username}:{self.config.token}".encode("utf-8")
        return "Authorization: Basic " + base64.b64encode(raw).decode("ascii")

    async def _ensure_origin(self, repo: Path, remote_url: str) -> None:
        """Register *remote_url* as ``origin`` if the repository has no origin yet."""
        try:
            await _run_git("remote", "get-url", REMOTE_NAME, cwd=repo, timeout=self.config.timeout)
        except GitCommandError:
            await _run_git(
                "remote", "add", REMOTE_NAME, remote_url,
                cwd=repo, timeout=self.config.timeout,
            )

    async def push(self, path: str | Path, remote_url: str) -> PushResult:
        """Push the configured branch to ``origin``.

        Missing remote URL, username or token produce a soft failure: a
        ``PushResult`` with ``ok=False`` naming every missing setting.

        Raises:
            RepositoryNotFound: If *path* is not a git working tree.
            PushError: If git cannot reach the remote or the push is rejected.
        """
        repo = self._require_repository(path)

        missing = self._missing_push_settings(remote_url)
        if missing:
            message = "\n".join(f"ERROR: {m}" for m in missing)
            console.print(f"  [yellow]Push skipped:[/yellow] {escape(message)}")
            return PushResult(ok=False, message=message, failure=ErrorKind.PUSH_PRECONDITION)

        await self._ensure_origin(repo, remote_url)

        branch = self.config.branch
        header = self._auth_header()
        console.print(
            f"  [cyan]Pushing[/cyan] {branch} to {escape(remote_url)} "
            f"as user {escape(self.config.username)}..."
        )
        try:
            stdout, _ = await _run_git(
                "-c", f"http.extraHeader={header}",
                "push", "--porcelain", REMOTE_NAME, f"{branch}:{branch}",
                cwd=repo,
                timeout=self.config.push_timeout,
                secrets=(header, self.config.token),
            )
        except GitCommandError as exc:
            detail = exc.stderr or exc.stdout or str(exc)
            console.print(f"  [red]Push failed:[/red] {escape(detail)}")
            raise PushError(
                f"Push failed: {detail}", command=exc.command, stderr=exc.stderr, stdout=exc.stdout
            ) from exc

        updates = parse_push_porcelain(stdout)
        lines = [f"Push completed to: {remote_url}"]
        for update in updates:
            console.print(
                f"    Remote ref: {escape(update.ref)} - Status: {update.status}"
                f" - Message: {escape(update.message)}"
            )
            lines.append(f"  {update.ref}: {update.status}")

        console.print(f"  [green]Successfully pushed to remote:[/green] {escape(remote_url)}")
        return PushResult(ok=True, message="\n".join(lines), updates=updates)

    # -- Composite ---------------------------------------------------------

    async def commit_and_push(
        self,
        message: str,
        pattern: str,
        path: str | Path,
        remote_url: str,
    ) -> CommitOutcome:
        """Initialise if needed, then stage, commit and push.

        A failure in any step aborts the remaining steps and propagates.  A
        push precondition failure is not an error: the outcome is returned
        with ``pushed`` false and the reason in ``push.message``.
        """
        outcome = CommitOutcome()

        if not self.has_repository(path):
            outcome.messages.append(await self.ensure_repository(path, remote_url))
            outcome.initialized = True

        outcome.messages.append(await self.stage(pattern, path))
        outcome.staged = True

        outcome.messages.append(await self.commit(message, path))
        outcome.committed = True

        outcome.push = await self.push(path, remote_url)
        outcome.messages.append(outcome.push.message)

        return outcome

    # -- Status ------------------------------------------------------------

    async def status(self, path: str | Path) -> RepoStatus:
        """Return the working-tree status of the repository at *path*.

        A path without a repository yields ``RepoStatus(exists=False)``.
        """
        repo = Path(path)
        if not self.has_repository(repo):
            return RepoStatus(path=repo, exists=False)

        branch, _ = await _run_git(
            "symbolic-ref", "--short", "HEAD", cwd=repo, timeout=self.config.timeout
        )
        stdout, _ = await _run_git(
            "status", "--porcelain", "--untracked-files=all",
            cwd=repo, timeout=self.config.timeout, strip=False,
        )
        return parse_status_porcelain(stdout, repo, branch)
