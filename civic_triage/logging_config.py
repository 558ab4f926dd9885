"""
JSON structured logging configuration using python-json-logger
"""
import logging
import logging.config
import sys
from typing import Any, Dict, Optional

import pythonjsonlogger.jsonlogger

from civic_triage.config import Settings, get_settings


# Package logger shared by all services
logger = logging.getLogger("civic_triage")

# Record attributes copied into JSON output when a call passes them via ``extra``
CONTEXT_FIELDS = ("correlation_id", "report_id", "complaint_id", "event_type")


class CustomJsonFormatter(pythonjsonlogger.jsonlogger.JsonFormatter):
    """JSON formatter tagging each record with the service and its ingestion context"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['service'] = 'civic-triage'
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_record[name] = value


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """
    dictConfig for the service

    JSON lines in production, plain text elsewhere. SQL statements are only
    logged when DATABASE_ECHO is on.
    """
    handler = {
        'class': 'logging.StreamHandler',
        'level': settings.LOG_LEVEL,
        'formatter': 'json' if settings.ENVIRONMENT == 'production' else 'standard',
        'stream': sys.stdout
    }
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'json': {
                '()': CustomJsonFormatter,
                'format': '%(asctime)s %(name)s %(levelname)s %(message)s'
            },
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            }
        },
        'handlers': {'console': handler},
        'loggers': {
            'civic_triage': {
                'level': settings.LOG_LEVEL,
                'handlers': ['console'],
                'propagate': False
            },
            'sqlalchemy.engine': {
                'level': 'INFO' if settings.DATABASE_ECHO else 'WARNING',
                'handlers': ['console'],
                'propagate': False
            }
        },
        'root': {
            'level': 'WARNING',
            'handlers': ['console']
        }
    }


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Apply the service logging configuration"""
    settings = settings or get_settings()
    logging.config.dictConfig(build_logging_config(settings))

    logger.info(f"Logging configured for {settings.ENVIRONMENT} at level {settings.LOG_LEVEL}")
