"""HTTP surface for scaffold-forge.

Exposes the request pipeline to browser clients:

    POST /processrequest?prompt=...&agent=scaffold|spec
    GET  /status?agent=scaffold|spec

``prompt`` and ``agent`` may also be sent as form fields.  Responses use the
``{responseCode, message, data, warnings}`` body with status 200 on success
and 500 on failure.

Run with::

    python -m scaffold_forge.server --port 8080
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from rich.markup import escape

from scaffold_forge.config import Config
from scaffold_forge.errors import ForgeError, UnknownAgentError
from scaffold_forge.pipeline import Pipeline, RequestResult
from scaffold_forge.utils import console

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _request_params(request: Request) -> dict[str, str]:
    params = dict(request.query_params)
    if request.headers.get("content-type", "").startswith(_FORM_TYPES):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


def create_app(config: Config | None = None, pipeline: Pipeline | None = None) -> FastAPI:
    """Build the FastAPI application around one shared :class:`Pipeline`."""
    config = config or (pipeline.config if pipeline else Config.from_env())
    pipeline = pipeline or Pipeline(config)

    app = FastAPI(title="scaffold-forge")
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/processrequest")
    async def process_request(request: Request) -> JSONResponse:
        params = await _request_params(request)
        missing = [name for name in ("prompt", "agent") if params.get(name) is None]
        if missing:
            raise HTTPException(
                status_code=400, detail=f"Missing required parameter(s): {', '.join(missing)}"
            )

        result = await pipeline.process_request(params["prompt"], params["agent"])
        return JSONResponse(result.to_response(), status_code=200 if result.success else 500)

    @app.get("/status")
    async def status(agent: str = "scaffold") -> JSONResponse:
        try:
            repo_status = await pipeline.status(agent)
        except UnknownAgentError as exc:
            result = RequestResult.failure(str(exc), exc.kind)
            return JSONResponse(result.to_response(), status_code=400)
        except ForgeError as exc:
            console.print(f"[bold red]Status failed:[/bold red] {escape(str(exc))}")
            result = RequestResult.failure(str(exc), exc.kind)
            return JSONResponse(result.to_response(), status_code=500)

        result = RequestResult(success=True, message="Success", data=repo_status.describe())
        return JSONResponse(result.to_response())

    return app


def main() -> None:
    """CLI entry point for ``python -m scaffold_forge.server``."""
    import argparse
    from pathlib import Path

    import uvicorn

    parser = argparse.ArgumentParser(description="scaffold-forge HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=8080, help="Port (default: 8080)")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON configuration file (default: read FORGE_* environment variables)",
    )
    args = parser.parse_args()

    config = Config.load(Path(args.config)) if args.config else Config.from_env()
    config.ensure_directories()

    console.print(
        f"[bold bright_cyan]scaffold-forge[/bold bright_cyan] listening on "
        f"http://{args.host}:{args.port} (CORS: {', '.join(config.cors_origins)})"
    )
    uvicorn.run(create_app(config), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
