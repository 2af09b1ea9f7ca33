#!/usr/bin/env python3
"""
Entry point for the Auth Gate service.
"""

import os

import uvicorn

from app.config import LOG_LEVEL

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
        log_level=LOG_LEVEL.lower(),
    )
