# picket/core/logging.py
import logging
import sys
from datetime import datetime

# Level applied to loggers created after setup_logging() runs
_default_level: int = logging.INFO

_LOGGER_PREFIX = 'picket'


class ColoredFormatter(logging.Formatter):
    """Column-aligned, colored formatter for worker output"""

    COLORS = {
        'RESET': '\033[0m',
        'LIGHT_BLUE': '\033[94m',
        'WHITE': '\033[97m',
        'GRAY': '\033[90m',
        'GREEN': '\033[92m',
        'YELLOW': '\033[93m',
        'RED': '\033[91m',
        'BRIGHT_RED': '\033[1;91m',
    }

    LEVEL_COLORS = {
        'DEBUG': COLORS['GRAY'],
        'INFO': COLORS['GREEN'],
        'WARNING': COLORS['YELLOW'],
        'ERROR': COLORS['RED'],
        'CRITICAL': COLORS['BRIGHT_RED'],
    }

    # [reservation] is the widest component tag
    COMPONENT_WIDTH = 15
    LEVEL_WIDTH = 10

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        # 'picket.reclaimer' -> 'reclaimer'
        component = record.name.rsplit('.', 1)[-1]

        component_padded = f'[{component}]'.ljust(self.COMPONENT_WIDTH)
        level_padded = f'[{record.levelname}]'.ljust(self.LEVEL_WIDTH)
        level_color = self.LEVEL_COLORS.get(record.levelname, self.COLORS['WHITE'])
        reset = self.COLORS['RESET']

        formatted = (
            f"{self.COLORS['LIGHT_BLUE']}[{time_str}]{reset} "
            f"{self.COLORS['WHITE']}{component_padded}{reset}"
            f'{level_color}{level_padded}{reset}'
            f"{self.COLORS['WHITE']}{record.getMessage()}{reset}"
        )

        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)

        return formatted


def set_default_level(level: int) -> None:
    """Set the level used by loggers created from now on."""
    global _default_level
    _default_level = level


def get_default_level() -> int:
    return _default_level


def get_logger(component_name: str) -> logging.Logger:
    """Get the logger for a worker component, e.g. get_logger('worker')."""
    logger = logging.getLogger(f'{_LOGGER_PREFIX}.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter())
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)

        # Parent 'picket' logger must not print the record a second time
        logger.propagate = False

    return logger


def setup_logging(loglevel: str) -> None:
    """Apply a level name to the default and to every existing picket logger."""
    level = getattr(logging, loglevel.upper(), logging.INFO)
    set_default_level(level)

    logging.getLogger(_LOGGER_PREFIX).setLevel(level)

    for name in list(logging.Logger.manager.loggerDict):
        if isinstance(name, str) and name.startswith(f'{_LOGGER_PREFIX}.'):
            lgr = logging.getLogger(name)
            lgr.setLevel(level)
            for handler in lgr.handlers:
                handler.setLevel(level)
