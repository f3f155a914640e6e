#!/usr/bin/env python3
"""Startup script for the Codenames backend"""

import os
import uvicorn

APP = "codenames_engine.main:app"


def server_options(environ=None):
    """Read the uvicorn options from the environment."""
    environ = os.environ if environ is None else environ
    return {
        "host": environ.get("HOST", "0.0.0.0"),
        "port": int(environ.get("PORT", 8000)),
        "reload": environ.get("RELOAD", "false").lower() == "true",
        "log_level": environ.get("LOG_LEVEL", "info").lower(),
    }


def main(environ=None):
    options = server_options(environ)
    host, port = options["host"], options["port"]

    print(f"Starting Codenames backend on {host}:{port}")
    print(f"Health check available at: http://{host}:{port}/health")
    print(f"WebSocket endpoint: ws://{host}:{port}/ws")

    uvicorn.run(APP, **options)


if __name__ == "__main__":
    main()
