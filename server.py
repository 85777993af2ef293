from __future__ import annotations

import os
from typing import TYPE_CHECKING

import uvicorn

from authgate.app import create_app as build_service
from authgate.config import load_config
from authgate.env import load_env, setup_logging, validate_env

if TYPE_CHECKING:
    from starlette.applications import Starlette


def create_app() -> "Starlette":
    load_env()
    setup_logging()
    validate_env()
    return build_service(load_config())


def main() -> None:
    host = os.getenv("AUTHGATE_HOST", "127.0.0.1")
    port = int(os.getenv("AUTHGATE_PORT", "8000"))
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
