#!/usr/bin/env python3
"""
Точка входа API Coberturas
"""

import uvicorn

from core.config.settings import settings


def main():
    """Запуск HTTP API."""
    uvicorn.run(
        "apps.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
