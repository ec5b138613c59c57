"""
Piano Service Automation API entry point
"""
import uvicorn

from automation_engine.api import create_app
from automation_engine.config import Settings, configure_logging


settings = Settings.from_env()
configure_logging(settings.log_level)


if __name__ == "__main__":
    if settings.api_reload:
        # development
        uvicorn.run(
            "automation_engine.api.app:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level="info"
        )
    else:
        uvicorn.run(
            create_app(settings),
            host=settings.api_host,
            port=settings.api_port,
            log_level="info"
        )
