#!/usr/bin/env python3
"""
Run script for the ShopEase auth API.
This script launches the FastAPI server built by shopease.main.create_app.
"""
import sys
import traceback

import uvicorn

from shopease.config import Settings

if __name__ == "__main__":
    try:
        settings = Settings.from_env()

        # Print information about the server
        print("Starting ShopEase auth API server...")
        print(f"Access the API at http://localhost:{settings.port}{settings.api_prefix}")
        print(f"API documentation at http://localhost:{settings.port}/docs")

        # Run the server
        uvicorn.run(
            "shopease.main:create_app",
            factory=True,
            host="0.0.0.0",
            port=settings.port,
            reload=True,
            log_level=settings.log_level.lower()
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
