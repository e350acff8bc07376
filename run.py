#!/usr/bin/env python3
"""
Run script for the SkillCheck verification backend
"""
import uvicorn

from skillcheck.config.settings import settings
from skillcheck.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, reload=settings.debug)
