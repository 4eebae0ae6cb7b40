"""Run the controller with uvicorn: ``python -m fieldscan``."""
from __future__ import annotations

import uvicorn

from .config import get_settings
from .main import build_default_app


def main() -> None:
    settings = get_settings()
    uvicorn.run(build_default_app(settings), host=settings.controller_host, port=settings.controller_port)


if __name__ == "__main__":
    main()
