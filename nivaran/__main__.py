"""
Run the escalation API server.

    python -m nivaran
"""

import uvicorn

from nivaran.api.app import create_app
from nivaran.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
