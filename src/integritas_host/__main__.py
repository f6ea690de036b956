"""Run the host with uvicorn: ``python -m integritas_host``."""

import uvicorn

from integritas_host.config import get_settings


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "integritas_host.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
