#!/usr/bin/env python3
"""
Run script for the authentication service.
This script launches the FastAPI server with the auth router mounted.
"""
import os
import sys
import traceback

import uvicorn

if __name__ == "__main__":
    try:
        port = int(os.getenv("PORT", 8000))
        print(f"Starting authentication service on http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        uvicorn.run(
            "auth_service.main:app",
            host="0.0.0.0",
            port=port,
            reload=os.getenv("RELOAD", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
