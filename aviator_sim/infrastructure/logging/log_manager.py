# aviator_sim/infrastructure/logging/log_manager.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Dict, Any, Union, Optional

from aviator_sim.infrastructure.config.loaders.yaml_loader import deep_merge

DEFAULT_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_LOGGING_CONFIG = {
    'level': 'INFO',
    'console': True,
    'format': DEFAULT_FORMAT,
    'date_format': '%Y-%m-%d %H:%M:%S',
    'file': {
        'enabled': False,
        'path': 'logs/aviator.log',
        'level': 'DEBUG',
        'max_bytes': 10 * 1024 * 1024,
        'backup_count': 5
    },
    # 每帧的倍数日志在 DEBUG，默认只看回合开始和结算
    'loggers': {
        'domain.round': {'level': 'INFO'},
        'domain.session': {'level': 'INFO'},
        'infrastructure': {'level': 'WARNING'}
    }
}


class LogManager:
    """
    Configures the root logger from the ``logging`` config section.

    Modules only call ``logging.getLogger("<layer>.<component>")``; levels for
    whole layers (``domain``, ``domain.round``, ``infrastructure``...) are
    set here from the ``loggers`` mapping. A partial section is laid over
    ``DEFAULT_LOGGING_CONFIG``; a ``loggers`` mapping replaces the default one.
    """
    def __init__(self):
        self.root_logger = logging.getLogger()
        self.loggers: Dict[str, logging.Logger] = {}
        self.handlers: Dict[str, logging.Handler] = {}
        self.initialized = False

    def initialize(self, config: Optional[Dict[str, Any]] = None, force: bool = False):
        if self.initialized and not force:
            return
        config = config or {}
        merged = deep_merge(DEFAULT_LOGGING_CONFIG, config)
        # 显式给出的 loggers 映射是完整的层级设置，不与默认值合并
        if 'loggers' in config:
            merged['loggers'] = dict(config['loggers'] or {})
        config = merged

        level = self._get_log_level(config['level'])
        formatter = logging.Formatter(config['format'], config['date_format'])

        self.root_logger.setLevel(level)
        for handler in list(self.root_logger.handlers):
            self.root_logger.removeHandler(handler)
        self.handlers = {}
        # 重新初始化时先撤销上一次设置的 logger 级别
        for logger in self.loggers.values():
            logger.setLevel(logging.NOTSET)
            logger.propagate = True
        self.loggers = {}

        if config['console']:
            self._add_handler('console', logging.StreamHandler(sys.stdout),
                              config.get('console_level', level), formatter)

        file_config = config['file'] or {}
        if file_config.get('enabled'):
            self._add_handler('file', self._build_file_handler(file_config),
                              file_config.get('level', level), formatter)

        self._configure_loggers(config['loggers'] or {}, level)

        self.root_logger.debug(f"Logging initialized with handlers: {', '.join(self.handlers) or 'none'}")
        self.initialized = True

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def _add_handler(self, name: str, handler: logging.Handler, level, formatter: logging.Formatter):
        handler.setLevel(self._get_log_level(level))
        handler.setFormatter(formatter)
        self.root_logger.addHandler(handler)
        self.handlers[name] = handler

    def _build_file_handler(self, file_config: Dict[str, Any]) -> RotatingFileHandler:
        path = file_config.get('path', DEFAULT_LOGGING_CONFIG['file']['path'])
        log_dir = os.path.dirname(path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        return RotatingFileHandler(
            path,
            maxBytes=file_config.get('max_bytes', DEFAULT_LOGGING_CONFIG['file']['max_bytes']),
            backupCount=file_config.get('backup_count', DEFAULT_LOGGING_CONFIG['file']['backup_count']),
            encoding='utf-8'
        )

    def _configure_loggers(self, logger_configs: Dict[str, Any], default_level: int):
        # 父 logger 先于子 logger
        for name in sorted(logger_configs, key=lambda n: n.count('.')):
            logger_config = logger_configs[name] or {}
            logger = logging.getLogger(name)
            logger.setLevel(self._get_log_level(logger_config.get('level', default_level)))
            logger.propagate = logger_config.get('propagate', True)
            self.loggers[name] = logger

    def _get_log_level(self, level_name: Union[str, int]) -> int:
        """Numeric level for a name such as ``"warning"``; INFO when unknown."""
        if isinstance(level_name, int):
            return level_name
        level = logging.getLevelName(str(level_name).upper())
        return level if isinstance(level, int) else logging.INFO


log_manager = LogManager()


def initialize_logging(config: Dict[str, Any] = None, force: bool = False) -> LogManager:
    log_manager.initialize(config, force=force)
    return log_manager
