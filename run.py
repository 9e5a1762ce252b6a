#!/usr/bin/env python3
"""
Entry point for running the schedwatch service.
"""

import uvicorn

from schedwatch.web.app import app

if __name__ == "__main__":
    uvicorn.run(
        "schedwatch.web.app:app",
        host="0.0.0.0",
        port=8000,
        reload=False
    )
