"""Run the API with uvicorn: ``python -m finwise``."""

import uvicorn

from finwise.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "finwise.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug and not settings.is_production,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
