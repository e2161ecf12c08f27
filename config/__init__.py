from .logging_config import JsonFormatter, configure_logging
from .settings import Settings, get_settings

__all__ = ["JsonFormatter", "Settings", "configure_logging", "get_settings"]
