import logging
import logging.config
from typing import Optional


def setup_logging(cfg=None, level: Optional[str] = None) -> logging.Logger:
    """Применение конфигурации логирования из настроек приложения"""
    if cfg is None:
        from pomopilot.config import config as cfg

    if cfg.log_to_file:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)

    logging_config = cfg.get_logging_config()
    if level:
        logging_config['handlers']['console']['level'] = level
        logging_config['loggers']['']['level'] = level

    logging.config.dictConfig(logging_config)
    return logging.getLogger("pomopilot")
