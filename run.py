#!/usr/bin/env python3
"""
Token Ledger Entry Point

Starts the FastAPI server with settings taken from TOKEN_LEDGER_* environment
variables.
"""

import sys

from token_ledger.api import run_server
from token_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print(f"Starting Token Ledger ({config.token_symbol}) on {config.api_host}:{config.api_port}")
    print(f"Storage backend: {config.storage_backend}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Token Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
