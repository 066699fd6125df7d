import logging
import logging.config

FORMAT = "%(message)s"


def set_level_of_loggers_with_prefix(level: str | int, *logger_name_prefixes: str):
    """Route the loggers under each prefix to a single rich handler."""
    if not logger_name_prefixes:
        raise ValueError("At least one logger name prefix is required")
    for prefix in logger_name_prefixes:
        if not isinstance(prefix, str):
            raise TypeError("Logger name prefix must be a string")

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'loggers': {
            prefix: {
                'level': level,
                'handlers': ['rich'],
                'propagate': False,
            }
            for prefix in logger_name_prefixes
        },
        'handlers': {
            'rich': {
                'class': 'rich.logging.RichHandler',
                'formatter': 'rich',
            },
        },
        'formatters': {
            'rich': {
                'format': FORMAT,
            },
        },
    })
