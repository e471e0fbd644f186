"""
Entry point for the studyflow service.

Run with:
    uvicorn main:app --reload --port 8100
    python main.py
"""
import sys
from pathlib import Path

# Make the root config module importable when launched from elsewhere
sys.path.insert(0, str(Path(__file__).parent))

import uvicorn
from config import get_settings
from studyflow.api.main import app

settings = get_settings()

if __name__ == "__main__":
    uvicorn.run(
        "studyflow.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
