# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Defines the main unit so this responsibility stays isolated, testable, and easy to evolve.

Main application entry point for the novelforge generation gateway.
Includes global configuration setup, error handling, and router registration.
"""

from __future__ import annotations

import argparse
from typing import Optional
import os

from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from novelforge.api.v1.http_responses import service_error_json
from novelforge.core.config import load_gateway_config
from novelforge.services.exceptions import ServiceError

# Import API routers
from novelforge.api.v1.generation import router as generation_router  # noqa: E402
from novelforge.api.v1.providers import router as providers_router  # noqa: E402
from novelforge.api.v1.debug import router as debug_router  # noqa: E402


def create_app() -> FastAPI:
    """Create the FastAPI app.

    Uvicorn's reload mode requires an import string; using an app factory keeps
    route registration consistent across reload subprocesses.
    """

    app = FastAPI(title="novelforge")
    config = load_gateway_config()

    # Browser clients call the gateway directly, so preflight must succeed.
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=config["cors_origin_regex"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(generation_router)
    api_v1_router.include_router(providers_router)
    api_v1_router.include_router(debug_router)

    api_v1_router.add_api_route(
        "/health", endpoint=lambda: {"status": "ok"}, methods=["GET"]
    )

    app.include_router(api_v1_router)
    # Path used by clients of the edge-function deployment.
    app.include_router(generation_router, prefix="/functions/v1")

    # --------------- global exception handler ---------------
    @app.exception_handler(ServiceError)
    async def _service_error_handler(
        _request: Request, exc: ServiceError
    ) -> JSONResponse:
        return service_error_json(exc)

    return app


app = create_app()


def build_arg_parser() -> argparse.ArgumentParser:
    """Build Arg Parser."""
    parser = argparse.ArgumentParser(
        prog="novelforge",
        description="Run the novelforge generation gateway",
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind (default: 8000)"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload (development only)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker processes (overrides reload)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Log level for the server (default: info)",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding sessions.json, providers.json and novels/",
    )
    parser.add_argument(
        "--llm-dump",
        action="store_true",
        help="Dump upstream request/response records to a file",
    )
    parser.add_argument(
        "--llm-dump-path",
        default=None,
        help="Path for the upstream dump file (overrides default)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entrypoint to run the server via a normal Python invocation.

    Examples:
      python -m novelforge.main --help
      python -m novelforge.main --host 0.0.0.0 --port 8000 --reload
    """
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.data_dir:
        os.environ["NOVELFORGE_DATA_DIR"] = args.data_dir
    if args.llm_dump:
        os.environ["NOVELFORGE_LLM_DUMP"] = "1"
    if args.llm_dump_path:
        os.environ["NOVELFORGE_LLM_DUMP_PATH"] = args.llm_dump_path

    # Import uvicorn lazily so that importing this module doesn't require it for tests/tools
    import uvicorn  # type: ignore

    # Uvicorn's reload/multi-worker modes require an import string.
    use_import_string = bool(args.reload) or (
        isinstance(args.workers, int) and args.workers > 1
    )
    if use_import_string:
        app_target = "novelforge.main:create_app"
        factory = True
    else:
        app_target = app
        factory = False

    uvicorn.run(
        app_target,
        host=args.host,
        port=args.port,
        reload=bool(args.reload) if args.workers in (None, 0) else False,
        workers=args.workers,
        log_level=args.log_level,
        factory=factory,
    )


if __name__ == "__main__":
    main()
