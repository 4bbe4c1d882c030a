"""Server entry point -- python -m gtd_tasks"""

import uvicorn

from .config import get_settings


def main() -> None:
    settings = get_settings()
    # log_config=None keeps uvicorn on the root handler set up by create_app
    uvicorn.run(
        "gtd_tasks.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
