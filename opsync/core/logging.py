"""
Configuracion de logging (loguru).
"""
import sys

from loguru import logger

from opsync.core.config import settings

_configured = False


def configure_logging(level: str = None, log_file: str = None) -> None:
    """
    Configura los sinks de loguru: stderr y archivo rotativo.

    Args:
        level: Nivel minimo (por defecto settings.LOG_LEVEL)
        log_file: Ruta del archivo (por defecto settings.LOG_FILE); "" desactiva el sink
    """
    global _configured
    if _configured:
        return

    level = level or settings.LOG_LEVEL
    log_file = settings.LOG_FILE if log_file is None else log_file

    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        logger.add(
            log_file,
            rotation="500 MB",
            retention="10 days",
            level=level
        )
    _configured = True
    logger.info(f"Logging configurado (nivel={level}, archivo={log_file or '-'})")
