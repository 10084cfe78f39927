"""Run the MapyChat proxy with uvicorn: ``python -m mapychat``."""

from __future__ import annotations

import logging

import uvicorn

from mapychat.core.config import get_settings


def main() -> None:
    api_settings = get_settings().api
    logging.basicConfig(
        level=api_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "mapychat.api.server:app",
        host=api_settings.host,
        port=api_settings.port,
        reload=api_settings.reload,
        log_level=api_settings.log_level,
    )


if __name__ == "__main__":
    main()
