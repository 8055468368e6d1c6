"""Service catalog registration.

After a scaffold has been materialized and pushed, its ``catalog-info.yaml``
is registered with a Backstage-style locations endpoint.  Registration is
best effort: every failure is returned as a ``CatalogRegistration`` with
``success=False`` and never raised, so a generated project is delivered even
when the catalog is unreachable.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError
from rich.markup import escape

from scaffold_forge.config import CatalogConfig
from scaffold_forge.errors import ErrorKind
from scaffold_forge.utils import console


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class Location(BaseModel):
    id: str = ""
    type: str = ""
    target: str = ""


class EntityMetadata(BaseModel):
    name: str = ""
    namespace: str = ""
    annotations: dict[str, str] = Field(default_factory=dict)


class EntitySpec(BaseModel):
    type: str = ""
    target: str = ""


class Entity(BaseModel):
    """One catalog entity created (or found) for the registered location."""

    apiVersion: str = ""
    kind: str = ""
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)
    spec: EntitySpec = Field(default_factory=EntitySpec)


class CatalogRegistration(BaseModel):
    """Outcome of a registration attempt.

    Failed attempts carry ``failure=ErrorKind.CATALOG_ERROR``.
    """

    success: bool = False
    location: Location | None = None
    exists: bool | None = None
    entities: list[Entity] = Field(default_factory=list)
    error: str = ""
    failure: ErrorKind | None = None


# ---------------------------------------------------------------------------
# Registrar
# ---------------------------------------------------------------------------


def authorization_value(token: str) -> str:
    """Return the ``Authorization`` header value for *token*.

    A bare token is sent as a bearer token; a value that already names a
    scheme (``"Bearer abc"``, ``"Basic abc"``) is sent unchanged.
    """
    token = token.strip()
    if not token or " " in token:
        return token
    return f"Bearer {token}"


class CatalogRegistrar:
    """Posts ``{"type": "url", "target": <catalog path>}`` to the locations API."""

    def __init__(self, config: CatalogConfig | None = None) -> None:
        self.config = config or CatalogConfig()

    @property
    def enabled(self) -> bool:
        return bool(self.config.location_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        auth = authorization_value(self.config.access_token)
        if auth:
            headers["Authorization"] = auth
        return headers

    async def register(self, catalog_path: str | None = None) -> CatalogRegistration:
        """Register *catalog_path* (defaults to the configured path).

        Returns:
            A ``CatalogRegistration``; ``success`` is false when registration
            is not configured or when the call fails for any reason.
        """
        if not self.enabled:
            return CatalogRegistration(
                success=False, error="Catalog registration skipped: no location URL configured"
            )

        target = catalog_path or self.config.catalog_path
        payload: dict[str, Any] = {"type": "url", "target": target}

        console.print(f"  [cyan]Registering[/cyan] {escape(target)} with the service catalog...")
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(
                    self.config.location_url, json=payload, headers=self._headers()
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            return self._failed(
                f"Catalog returned HTTP {exc.response.status_code}: {exc.response.text[:500]}"
            )
        except httpx.HTTPError as exc:
            return self._failed(f"Catalog request failed: {exc}")
        except ValueError as exc:
            return self._failed(f"Catalog returned invalid JSON: {exc}")

        try:
            registration = CatalogRegistration.model_validate({**data, "success": True})
        except (ValidationError, TypeError) as exc:
            return self._failed(f"Unexpected catalog response: {exc}")

        console.print(
            f"  [green]+[/green] Catalog registration accepted "
            f"({len(registration.entities)} entit{'y' if len(registration.entities) == 1 else 'ies'})"
        )
        return registration

    @staticmethod
    def _failed(message: str) -> CatalogRegistration:
        console.print(f"  [yellow]Catalog registration failed:[/yellow] {escape(message)}")
        return CatalogRegistration(success=False, error=message, failure=ErrorKind.CATALOG_ERROR)
