import os

import uvicorn

from logging_config import setup_logging, get_logger

# Logging is configured before the app module builds its loggers
setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE"))
logger = get_logger(__name__)


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting pairchat on {host}:{port} (reload={reload})")
    # log_config=None keeps uvicorn on our handlers instead of its own dictConfig
    uvicorn.run("app:app", host=host, port=port, reload=reload, log_config=None)


if __name__ == "__main__":
    main()
