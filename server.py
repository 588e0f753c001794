import uvicorn  # type: ignore

from taskdesk.core import config
from taskdesk.utils import get_logger

log = get_logger(__name__)

if __name__ == "__main__":
    log.info("Running Taskdesk on %s:%s", config.SERVER_HOST, config.SERVER_PORT)
    uvicorn.run(
        "taskdesk.main:app",
        reload=config.SERVER_RELOAD,
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        log_level=config.LOG_LEVEL.lower(),
    )
