"""Run the fairqueue server: ``python -m fairqueue``."""

import uvicorn

from fairqueue.app import create_app
from fairqueue.core.config import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
