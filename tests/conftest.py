"""Shared pytest fixtures for the scaffold-forge test suite.

Provides reusable fixtures for:
- Temporary output roots and configuration
- A sample marker-protocol scaffold document
- Mocked Gemini (httpx) responses
- Mock subprocess helpers
- Real git repositories with a local bare remote (integration tests)
"""

from __future__ import annotations

import subprocess
import textwrap
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from scaffold_forge.config import CatalogConfig, Config, GitConfig


# ---------------------------------------------------------------------------
# Paths & configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    """Empty output root for materialization tests."""
    root = tmp_path / "output"
    root.mkdir()
    yield root


@pytest.fixture
def forge_config(tmp_path: Path) -> Config:
    """Config pointing both output roots into the temp dir, with no remotes."""
    return Config(
        scaffold_root=tmp_path / "scaffold",
        spec_root=tmp_path / "spec",
        git=GitConfig(username="", token=""),
        catalog=CatalogConfig(),
    )


@pytest.fixture
def sample_scaffold_document() -> str:
    """A generated response: README narrative followed by three file blocks."""
    return textwrap.dedent("""\
        # Inventory Service

        A small REST service for tracking stock levels.

        $$$$your-project-root
        &&&&.gitignore
        @@@@
        __pycache__/
        .venv/
        @@@@
        $$$$app
        &&&&main.py
        @@@@
        from fastapi import FastAPI

        app = FastAPI()
        @@@@
        $$$$tests/
        &&&&test_main.py
        @@@@
        def test_placeholder():
            assert True
        @@@@
    """)


# ---------------------------------------------------------------------------
# Mock Gemini
# ---------------------------------------------------------------------------

def make_gemini_response(text: str, model: str = "gemini-2.5-flash-001") -> dict[str, Any]:
    """Build a realistic ``generateContent`` response body."""
    return {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"text": text}]},
                "finishReason": "STOP",
                "index": 0,
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 321,
            "candidatesTokenCount": 1234,
            "totalTokenCount": 1555,
        },
        "modelVersion": model,
    }


@pytest.fixture
def mock_httpx_client():
    """Factory for a patched ``httpx.AsyncClient`` returning one JSON body.

    Usage:
        def test_something(mock_httpx_client):
            patcher, client = mock_httpx_client({"ok": True})
            with patcher:
                ...
            client.post.assert_awaited_once()
    """
    def factory(payload: Any = None, post_side_effect: Any = None):
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = payload
        mock_response.raise_for_status = MagicMock()

        mock_client = AsyncMock()
        if post_side_effect is not None:
            mock_client.post = AsyncMock(side_effect=post_side_effect)
        else:
            mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)

        return patch("httpx.AsyncClient", return_value=mock_client), mock_client

    return factory


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory


# ---------------------------------------------------------------------------
# Real git (integration)
# ---------------------------------------------------------------------------

def git(*args: str, cwd: Path) -> str:
    """Run a git command synchronously and return its stripped stdout."""
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """A local bare repository usable as ``origin``."""
    remote = tmp_path / "remote.git"
    remote.mkdir()
    git("init", "--bare", "--initial-branch=main", cwd=remote)
    yield remote
