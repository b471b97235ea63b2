"""Entry point for the temporal check-in HTTP service."""

import uvicorn

from temporal_checkin.channels.http import create_app
from temporal_checkin.config import settings
from temporal_checkin.logging import configure_logging


def main() -> None:
    """Configure logging and serve the API with uvicorn."""
    configure_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    app = create_app()
    uvicorn.run(
        app,
        host=settings.HTTP_HOST,
        port=settings.HTTP_PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
