#!/usr/bin/env python
"""
Run the FastAPI app without Docker.

Run: python run_api.py

Then open browser: http://localhost:8000/docs
"""
import uvicorn

from rostercore.config import settings
from rostercore.logging_config import setup_logging

if __name__ == "__main__":
    setup_logging(settings.log_level)
    uvicorn.run(
        "rostercore.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
