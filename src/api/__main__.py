"""Run the admin API: python -m src.api"""

import uvicorn

from src.config import settings
from src.logging_config import configure_logging

if __name__ == "__main__":
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "src.api.app:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
