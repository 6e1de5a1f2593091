"""Entry point for running the application with uvicorn."""

import logging

import uvicorn

from royalty_engine.config import Settings


def main() -> None:
    """Run the application."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "royalty_engine.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
