"""Error taxonomy shared by every stage of the pipeline.

Each failure carries an :class:`ErrorKind` so the request boundary can report
*what* failed without parsing messages.  Push-precondition and catalog
failures are deliberately absent from the exception hierarchy: they are
reported as data (see ``PushResult`` and ``CatalogRegistration``).
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Distinguished failure kinds surfaced at the request boundary."""

    TEMPLATE_NOT_FOUND = "template_not_found"
    RENDER_ERROR = "render_error"
    GENERATION_ERROR = "generation_error"
    FILE_ALREADY_EXISTS = "file_already_exists"
    IO_ERROR = "io_error"
    REPOSITORY_NOT_FOUND = "repository_not_found"
    GIT_ERROR = "git_error"
    PUSH_ERROR = "push_error"
    PUSH_PRECONDITION = "push_precondition"
    CATALOG_ERROR = "catalog_error"
    UNKNOWN_AGENT = "unknown_agent"
    UNEXPECTED = "unexpected"


class ForgeError(Exception):
    """Base class for every error raised by scaffold-forge."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class TemplateNotFound(ForgeError):
    """Raised when a prompt template cannot be located."""

    kind = ErrorKind.TEMPLATE_NOT_FOUND

    def __init__(self, name: str, search_path: str = "") -> None:
        self.name = name
        self.search_path = search_path
        where = f" in {search_path}" if search_path else ""
        super().__init__(f"Template not found: {name}{where}")


class RenderError(ForgeError):
    """Raised when template content cannot be decoded as text."""

    kind = ErrorKind.RENDER_ERROR


class GenerationError(ForgeError):
    """Raised on any generative backend or transport failure."""

    kind = ErrorKind.GENERATION_ERROR

    def __init__(self, message: str, model: str = "") -> None:
        self.model = model
        super().__init__(message)


class MaterializationError(ForgeError):
    """Raised when the output tree cannot be deleted or written."""

    kind = ErrorKind.IO_ERROR


class FileAlreadyExists(MaterializationError):
    """Raised when a create-new write finds its target already present."""

    kind = ErrorKind.FILE_ALREADY_EXISTS

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"File already exists: {path}")


class RepositoryNotFound(ForgeError):
    """Raised when a git operation targets a path without ``.git``."""

    kind = ErrorKind.REPOSITORY_NOT_FOUND

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No Git repository found at: {path}")


class GitCommandError(ForgeError):
    """Raised when a git command exits non-zero or times out."""

    kind = ErrorKind.GIT_ERROR

    def __init__(
        self, message: str, command: str = "", stderr: str = "", stdout: str = ""
    ) -> None:
        self.command = command
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(message)


class PushError(GitCommandError):
    """Raised when a push fails in transport or is rejected by the remote."""

    kind = ErrorKind.PUSH_ERROR


class UnknownAgentError(ForgeError):
    """Raised when a request names an agent kind that is not recognised."""

    kind = ErrorKind.UNKNOWN_AGENT

    def __init__(self, agent: str) -> None:
        self.agent = agent
        super().__init__(
            f"Unknown agent '{agent}'. Expected 'scaffold' or 'spec'."
        )
