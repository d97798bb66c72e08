"""
Run the flowmapper API server.

    python -m flowmapper
"""

import uvicorn

from .core.config import settings


def main() -> None:
    uvicorn.run(
        "flowmapper.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
