"""Run the API with uvicorn: ``python -m crowdsolve``."""

from __future__ import annotations

import uvicorn

from crowdsolve.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("crowdsolve.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
