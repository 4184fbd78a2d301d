"""
ASGI Entry Point for the shelfsync local API.

Loads ``.env`` before the application factory runs so `Settings` sees the
same configuration as the CLI.

Usage
-----
    $ python -m shelfsync.api.server

Or via uvicorn directly:
    $ uvicorn shelfsync.api.server:app --port 8765
"""

from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from shelfsync.api.app import create_app
from shelfsync.core.settings import load_settings

load_dotenv(dotenv_path=Path(".env"))

app = create_app()


def main() -> None:
    """Run the API server locally."""
    settings = load_settings()
    uvicorn.run(
        "shelfsync.api.server:app",
        host="127.0.0.1",
        port=8765,
        reload=settings.is_dev,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
