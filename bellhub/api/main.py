"""ASGI entry point: ``uvicorn bellhub.api.main:app`` or the ``bellhub`` script"""

import uvicorn

from bellhub.api.app import create_app
from bellhub.api.core.config import get_settings

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "bellhub.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
