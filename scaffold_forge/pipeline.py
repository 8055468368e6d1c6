"""scaffold-forge request pipeline.

One canonical pipeline turns a prompt into delivered output, parameterised by
the request kind:

SCAFFOLD -- render ``instructions.md``, generate, sweep the scaffold root,
            write README.md + the decoded tree + catalog-info.yaml, commit and
            push, then register the project in the service catalog.
SPEC     -- render ``instructions-spec.md`` with ``agent-template.md``
            attached, write ``Agent-<prompt>.md`` under the spec root, commit
            and push.

Usage::

    python -m scaffold_forge.pipeline "inventory service with REST API"
    python -m scaffold_forge.pipeline "payment agent" --agent spec --config forge.json
"""

from __future__ import annotations

import asyncio
import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from rich.markup import escape
from rich.panel import Panel

from scaffold_forge.catalog import CatalogRegistrar
from scaffold_forge.config import Config
from scaffold_forge.errors import ErrorKind, ForgeError, UnknownAgentError
from scaffold_forge.gemini_client import GeminiClient, TextPart
from scaffold_forge.prompt_builder import (
    SCAFFOLD_TEMPLATE,
    SPEC_REFERENCE_TEMPLATE,
    SPEC_TEMPLATE,
    PromptBuilder,
)
from scaffold_forge.scaffolder.materializer import TreeMaterializer
from scaffold_forge.scaffolder.protocol import parse_scaffold
from scaffold_forge.scaffolder.templates import TemplateRenderer
from scaffold_forge.utils import (
    console,
    format_duration,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    sanitize_name,
    spec_file_name,
    target_lock,
)
from scaffold_forge.vcs.repository import STAGE_ALL, CommitOutcome, RepoAutomation, RepoStatus

README_FILE = "README.md"
CATALOG_FILE = "catalog-info.yaml"
CATALOG_TEMPLATE = "catalog-info.yaml.j2"


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


class RequestKind(str, Enum):
    SCAFFOLD = "scaffold"
    SPEC = "spec"

    @classmethod
    def parse(cls, agent: str) -> "RequestKind":
        """Map an agent name to a request kind (case-insensitive).

        Raises:
            UnknownAgentError: For anything other than ``scaffold``, ``spec``
                or ``specification``.
        """
        value = (agent or "").strip().lower()
        if value == "scaffold":
            return cls.SCAFFOLD
        if value in ("spec", "specification"):
            return cls.SPEC
        raise UnknownAgentError(agent)


class RequestResult(BaseModel):
    """Outcome of :meth:`Pipeline.process_request`."""

    success: bool
    message: str
    data: str = ""
    error_kind: ErrorKind | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind) -> "RequestResult":
        return cls(success=False, message="Failure", data=error, error_kind=kind)

    def to_response(self) -> dict[str, Any]:
        """Serialise to the HTTP response body."""
        return {
            "responseCode": 1 if self.success else 0,
            "message": self.message,
            "data": self.data,
            "warnings": self.warnings,
        }


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """Runs scaffold and spec requests end to end.

    Collaborators are built from ``config`` unless supplied, which lets tests
    swap in mocks for the generative client, repository automation and
    catalog registrar.

    Attributes:
        config: Global configuration.
        client: Generative backend.
        prompts: Renders agent prompts from the template directory.
        repo: Git automation shared by both output roots.
        registrar: Service catalog registration.
    """

    def __init__(
        self,
        config: Config,
        client: GeminiClient | None = None,
        repo: RepoAutomation | None = None,
        registrar: CatalogRegistrar | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.config = config
        self.client = client or GeminiClient(
            api_key=config.gemini.api_key,
            base_url=config.gemini.url,
            model=config.gemini.model,
            timeout=config.gemini.timeout,
        )
        self.renderer = renderer or TemplateRenderer(config.templates_dir)
        self.prompts = PromptBuilder(self.renderer)
        self.repo = repo or RepoAutomation(config.git)
        self.registrar = registrar or CatalogRegistrar(config.catalog)

    def root_for(self, kind: RequestKind) -> Path:
        return self.config.scaffold_root if kind is RequestKind.SCAFFOLD else self.config.spec_root

    def remote_for(self, kind: RequestKind) -> str:
        if kind is RequestKind.SCAFFOLD:
            return self.config.git.scaffold_remote_url
        return self.config.git.spec_remote_url

    # ------------------------------------------------------------------
    # Request boundary
    # ------------------------------------------------------------------

    async def process_request(self, prompt: str, agent: str) -> RequestResult:
        """Run one request and convert every outcome into a ``RequestResult``.

        Domain errors become failure results carrying their kind; anything
        else is reported with its traceback as an unexpected failure.
        """
        start = time.monotonic()
        try:
            kind = RequestKind.parse(agent)
            print_step_header(f"{kind.value.upper()} request")
            console.print(f"  Prompt: [bold]{escape(prompt)}[/bold]")

            if kind is RequestKind.SCAFFOLD:
                text, warnings = await self._run_scaffold(prompt)
            else:
                text, warnings = await self._run_spec(prompt)

        except ForgeError as exc:
            print_error(
                f"Request FAILED after {format_duration(time.monotonic() - start)} "
                f"({exc.kind.value}): {escape(str(exc))}"
            )
            return RequestResult.failure(str(exc), exc.kind)

        except Exception as exc:
            tb = traceback.format_exc()
            print_error(
                f"Request FAILED after {format_duration(time.monotonic() - start)}: "
                f"{escape(str(exc))}"
            )
            console.print(f"[dim]{escape(tb)}[/dim]")
            return RequestResult.failure(str(exc), ErrorKind.UNEXPECTED)

        for warning in warnings:
            print_warning(escape(warning))
        print_success(
            f"{kind.value.capitalize()} request completed in "
            f"{format_duration(time.monotonic() - start)}"
        )
        return RequestResult(success=True, message="Success", data=text, warnings=warnings)

    # ------------------------------------------------------------------
    # Scaffold
    # ------------------------------------------------------------------

    async def _run_scaffold(self, prompt: str) -> tuple[str, list[str]]:
        rendered = self.prompts.build(SCAFFOLD_TEMPLATE, prompt)
        response = await self.client.generate([TextPart(text=rendered)])
        document = response.text

        blocks = parse_scaffold(document)
        console.print(f"  Decoded [bold]{len(blocks)}[/bold] file block(s)")

        root = self.root_for(RequestKind.SCAFFOLD)
        remote = self.remote_for(RequestKind.SCAFFOLD)
        async with target_lock(root):
            materializer = TreeMaterializer(root)
            await materializer.clear()
            await materializer.write_file("", README_FILE, document)
            await materializer.write_blocks(blocks)
            await materializer.write_file("", CATALOG_FILE, self.render_catalog_info(prompt))
            outcome = await self.repo.commit_and_push(prompt, STAGE_ALL, root, remote)

        warnings = self._push_warnings(outcome)

        registration = await self.registrar.register()
        if not registration.success:
            warnings.append(registration.error)

        print_summary_table(
            {
                "Output root": str(root),
                "Files written": str(len(blocks) + 2),
                "Pushed": "yes" if outcome.pushed else "no",
                "Catalog": "registered" if registration.success else "not registered",
                "Model": response.model,
            },
            title="Scaffold",
        )
        return document, warnings

    def render_catalog_info(self, prompt: str) -> str:
        """Render the catalog descriptor written beside the generated scaffold."""
        return self.renderer.render(
            CATALOG_TEMPLATE,
            {
                "project_name": sanitize_name(prompt) or "generated-project",
                "description": prompt,
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "source_location": self.config.git.scaffold_remote_url,
                "owner": self.config.git.user_name,
            },
        )

    # ------------------------------------------------------------------
    # Spec
    # ------------------------------------------------------------------

    async def _run_spec(self, prompt: str) -> tuple[str, list[str]]:
        rendered = self.prompts.build(SPEC_TEMPLATE, prompt)
        attachment = self.prompts.attachment(SPEC_REFERENCE_TEMPLATE)
        response = await self.client.generate([TextPart(text=rendered), attachment])

        root = self.root_for(RequestKind.SPEC)
        remote = self.remote_for(RequestKind.SPEC)
        file_name = spec_file_name(prompt)
        async with target_lock(root):
            await TreeMaterializer(root).write_file("", file_name, response.text)
            outcome = await self.repo.commit_and_push(prompt, STAGE_ALL, root, remote)

        print_summary_table(
            {
                "Output root": str(root),
                "Spec file": file_name,
                "Pushed": "yes" if outcome.pushed else "no",
                "Model": response.model,
            },
            title="Specification",
        )
        return response.text, self._push_warnings(outcome)

    @staticmethod
    def _push_warnings(outcome: CommitOutcome) -> list[str]:
        if outcome.push is not None and not outcome.push.ok:
            return [outcome.push.message]
        return []

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self, agent: str) -> RepoStatus:
        """Return the repository status of the output root for *agent*.

        Raises:
            UnknownAgentError: If *agent* is not a known request kind.
        """
        kind = RequestKind.parse(agent)
        return await self.repo.status(self.root_for(kind))


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for ``python -m scaffold_forge.pipeline``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="scaffold-forge -- generate, write and publish a project scaffold",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  python -m scaffold_forge.pipeline "inventory service with REST API"\n'
            '  python -m scaffold_forge.pipeline "payment agent" --agent spec\n'
            '  python -m scaffold_forge.pipeline "todo app" --config forge.json\n'
        ),
    )
    parser.add_argument("prompt", help="Natural-language description of what to generate")
    parser.add_argument(
        "--agent", "-a",
        default="scaffold",
        help="Request kind: scaffold or spec (default: scaffold)",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON configuration file (default: read FORGE_* environment variables)",
    )
    args = parser.parse_args()

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            console.print(f"[bold red]Error:[/bold red] Config file not found: {config_path}")
            sys.exit(1)
        config = Config.load(config_path)
    else:
        config = Config.from_env()

    console.print(
        Panel(
            f"[bold bright_cyan]scaffold-forge[/bold bright_cyan]\n"
            f"Agent         : {escape(args.agent)}\n"
            f"Scaffold root : {config.scaffold_root.resolve()}\n"
            f"Spec root     : {config.spec_root.resolve()}\n"
            f"Model         : {config.gemini.model}",
            title="[bold]Request[/bold]",
            border_style="bright_cyan",
        )
    )

    config.ensure_directories()
    result = asyncio.run(Pipeline(config).process_request(args.prompt, args.agent))

    if result.success:
        console.print("[bold green]Request completed successfully![/bold green]")
    else:
        console.print(f"[bold red]Request failed:[/bold red] {escape(result.data)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
