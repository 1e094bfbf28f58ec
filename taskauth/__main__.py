"""Run the auth API with uvicorn: ``python -m taskauth``."""

import uvicorn

from taskauth.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "taskauth.main:app",
        host="0.0.0.0",
        port=settings.server_port,
        timeout_keep_alive=settings.server_idle_timeout,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
