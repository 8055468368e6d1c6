"""scaffold-forge configuration.

Centralised, typed configuration for the whole pipeline. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.

Credentials (Gemini API key, git token, catalog token) are plain strings; the
pipeline only ever checks them for presence.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class GeminiConfig(BaseModel):
    """Configuration for the Gemini ``generateContent`` REST endpoint."""

    url: str = Field(default="https://generativelanguage.googleapis.com")
    api_key: str = Field(default="")
    model: str = Field(default="gemini-2.5-flash")
    timeout: int = Field(default=300, ge=10, description="Per-request timeout in seconds")


class GitConfig(BaseModel):
    """Identity, credentials and remotes used by the repository automation."""

    username: str = Field(default="")
    token: str = Field(default="", description="Password or personal access token")
    branch: str = Field(default="main")
    user_name: str = Field(default="scaffold-forge", description="Author/committer name")
    user_email: str = Field(default="scaffold-forge@localhost", description="Author/committer email")
    scaffold_remote_url: str = Field(default="")
    spec_remote_url: str = Field(default="")
    timeout: int = Field(default=60, ge=1, description="Timeout for local git commands in seconds")
    push_timeout: int = Field(default=300, ge=1, description="Timeout for git push in seconds")


class CatalogConfig(BaseModel):
    """Service catalog (Backstage locations API) registration settings."""

    location_url: str = Field(default="")
    catalog_path: str = Field(default="", description="URL of the catalog-info.yaml to register")
    access_token: str = Field(default="")
    timeout: int = Field(default=30, ge=1)


class Config(BaseModel):
    """Global scaffold-forge configuration.

    Holds every tuneable parameter and output path used by the pipeline.
    Instances are typically created once by the CLI or HTTP entry point and
    then passed through the rest of the system.
    """

    scaffold_root: Path = Field(default=Path("./output/scaffold"))
    spec_root: Path = Field(default=Path("./output/spec"))
    templates_dir: Path | None = Field(
        default=None, description="Override for the bundled prompt templates"
    )
    cors_origins: list[str] = Field(default=["http://localhost:3000"])
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            FORGE_SCAFFOLD_ROOT, FORGE_SPEC_ROOT, FORGE_TEMPLATES_DIR,
            FORGE_CORS_ORIGINS (comma-separated),
            FORGE_GEMINI_URL, FORGE_GEMINI_API_KEY (falls back to
            GEMINI_API_KEY / GOOGLE_API_KEY), FORGE_GEMINI_MODEL,
            FORGE_GEMINI_TIMEOUT,
            FORGE_GIT_USERNAME, FORGE_GIT_TOKEN, FORGE_GIT_BRANCH,
            FORGE_GIT_USER_NAME, FORGE_GIT_USER_EMAIL,
            FORGE_GIT_SCAFFOLD_REMOTE, FORGE_GIT_SPEC_REMOTE,
            FORGE_CATALOG_LOCATION_URL, FORGE_CATALOG_PATH, FORGE_CATALOG_TOKEN.
        """
        env = os.environ

        gemini_kwargs: dict[str, Any] = {}
        if env.get("FORGE_GEMINI_URL"):
            gemini_kwargs["url"] = env["FORGE_GEMINI_URL"]
        api_key = (
            env.get("FORGE_GEMINI_API_KEY")
            or env.get("GEMINI_API_KEY")
            or env.get("GOOGLE_API_KEY")
        )
        if api_key:
            gemini_kwargs["api_key"] = api_key
        if env.get("FORGE_GEMINI_MODEL"):
            gemini_kwargs["model"] = env["FORGE_GEMINI_MODEL"]
        if env.get("FORGE_GEMINI_TIMEOUT"):
            gemini_kwargs["timeout"] = int(env["FORGE_GEMINI_TIMEOUT"])

        git_env = {
            "username": "FORGE_GIT_USERNAME",
            "token": "FORGE_GIT_TOKEN",
            "branch": "FORGE_GIT_BRANCH",
            "user_name": "FORGE_GIT_USER_NAME",
            "user_email": "FORGE_GIT_USER_EMAIL",
            "scaffold_remote_url": "FORGE_GIT_SCAFFOLD_REMOTE",
            "spec_remote_url": "FORGE_GIT_SPEC_REMOTE",
        }
        git_kwargs: dict[str, Any] = {
            field: env[var] for field, var in git_env.items() if env.get(var)
        }

        catalog_env = {
            "location_url": "FORGE_CATALOG_LOCATION_URL",
            "catalog_path": "FORGE_CATALOG_PATH",
            "access_token": "FORGE_CATALOG_TOKEN",
        }
        catalog_kwargs: dict[str, Any] = {
            field: env[var] for field, var in catalog_env.items() if env.get(var)
        }

        kwargs: dict[str, Any] = {
            "scaffold_root": Path(env.get("FORGE_SCAFFOLD_ROOT", "./output/scaffold")),
            "spec_root": Path(env.get("FORGE_SPEC_ROOT", "./output/spec")),
            "gemini": GeminiConfig(**gemini_kwargs),
            "git": GitConfig(**git_kwargs),
            "catalog": CatalogConfig(**catalog_kwargs),
        }
        if env.get("FORGE_TEMPLATES_DIR"):
            kwargs["templates_dir"] = Path(env["FORGE_TEMPLATES_DIR"])
        if env.get("FORGE_CORS_ORIGINS"):
            kwargs["cors_origins"] = [
                o.strip() for o in env["FORGE_CORS_ORIGINS"].split(",") if o.strip()
            ]

        return cls(**kwargs)

    def ensure_directories(self) -> None:
        """Create the output roots that must exist before a request runs."""
        for directory in (self.scaffold_root, self.spec_root):
            directory.mkdir(parents=True, exist_ok=True)
