import logging
import sys
from barberbook.core.config import settings
import newrelic.agent

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(level: int = logging.INFO):
    """
    Configures logging for the application.
    Integrates with New Relic if configured.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    # New Relic's formatter adds trace/entity metadata (Logs in Context)
    if settings.new_relic_license_key:
        try:
            handler.setFormatter(newrelic.agent.NewRelicContextFormatter())
        except Exception:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger.addHandler(handler)

    # Set log levels for specific libraries to reduce noise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
