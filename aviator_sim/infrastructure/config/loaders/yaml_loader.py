# aviator_sim/infrastructure/config/loaders/yaml_loader.py
import copy
import os
import yaml
import json
import logging
from typing import Dict, Any, List, Optional


class ConfigError(Exception):
    """配置加载或验证错误的基类。"""
    def __init__(self, message):
        self.message = message
        super().__init__(message)


class FileNotFoundConfigError(ConfigError):
    def __init__(self, path, message=None):
        self.path = path
        super().__init__(message or f"Configuration file not found: {path}")


class YamlParseError(ConfigError):
    def __init__(self, file_path, yaml_error):
        self.file_path = file_path
        self.yaml_error = yaml_error
        super().__init__(f"Error parsing YAML file {file_path}: {yaml_error}")


class SchemaValidationError(ConfigError):
    def __init__(self, file_path, errors):
        self.file_path = file_path
        self.errors = errors
        details = "".join(f"\n  - {error}" for error in errors)
        super().__init__(f"Configuration validation failed for {file_path}:{details}")


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``. Nested mappings are merged
    key by key; any other value in ``override`` replaces the base value.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class YamlConfigLoader:
    """
    加载游戏的 YAML 配置并按 JSON schema 验证。

    In strict mode (the default) a missing file, a parse error or a schema
    violation raises; otherwise the loader logs and falls back to the
    supplied default or to the unvalidated config.
    """
    def __init__(self, schema_validator=None):
        self.logger = logging.getLogger("infrastructure.config.loader")
        self.schema_validator = schema_validator
        self.strict_mode = True

    def set_strict_mode(self, strict: bool = True):
        self.strict_mode = strict
        return self

    def load_file(self, file_path: str, schema_path: Optional[str] = None,
                  default_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Load one YAML file and validate it when a schema is given.

        Raises:
            FileNotFoundConfigError, YamlParseError: unless not strict and a
                default config is available
            SchemaValidationError: in strict mode
        """
        try:
            config = self._read_yaml(file_path)
        except (FileNotFoundConfigError, YamlParseError) as e:
            if default_config is not None and not self.strict_mode:
                self.logger.warning(f"{e.message}; using default configuration")
                return default_config
            raise

        if config is None:
            self.logger.warning(f"Empty configuration file: {file_path}")
            config = default_config if default_config is not None else {}

        self._validate(config, file_path, schema_path)
        return config

    def load_layered(self, file_paths: List[str], schema_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Deep-merge several YAML files, later files overriding earlier ones.

        Used to lay a partial user file over the packaged defaults; only the
        merged result is validated. Every file must exist.
        """
        config: Dict[str, Any] = {}
        for path in file_paths:
            layer = self._read_yaml(path) or {}
            if not isinstance(layer, dict):
                raise ConfigError(f"Configuration file {path} must contain a mapping")
            config = deep_merge(config, layer)
            self.logger.debug(f"Merged configuration layer {path}")

        self._validate(config, " + ".join(file_paths), schema_path)
        return config

    def load_with_fallbacks(self, file_paths: List[str], schema_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load the first of ``file_paths`` that loads and validates.

        Raises:
            ConfigError: if none does and strict mode is on
        """
        errors = []
        for path in file_paths:
            try:
                config = self._read_yaml(path) or {}
                self._validate(config, path, schema_path, strict=True)
            except ConfigError as e:
                errors.append(f"{path}: {e.message}")
                continue
            self.logger.info(f"Loaded configuration from {path}")
            return config

        message = "All configuration files failed to load:" + "".join(f"\n  - {err}" for err in errors)
        self.logger.error(message)
        if self.strict_mode:
            raise ConfigError(message)
        self.logger.warning("Using empty configuration as fallback")
        return {}

    def _read_yaml(self, file_path: str):
        if not os.path.isfile(file_path):
            self.logger.error(f"Configuration file not found: {file_path}")
            raise FileNotFoundConfigError(file_path)
        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                return yaml.safe_load(file)
        except yaml.YAMLError as e:
            error = YamlParseError(file_path, e)
            self.logger.error(error.message)
            raise error from e

    def _validate(self, config: Dict[str, Any], source: str, schema_path: Optional[str],
                  strict: Optional[bool] = None):
        if not schema_path or self.schema_validator is None:
            return
        strict = self.strict_mode if strict is None else strict

        is_valid, errors = self.schema_validator.validate(config, self._load_schema(schema_path))
        if is_valid:
            self.logger.debug(f"Configuration {source} matches schema {schema_path}")
            return

        error = SchemaValidationError(source, errors)
        if strict:
            raise error
        self.logger.warning(f"{error.message}\nUsing unvalidated configuration.")

    def _load_schema(self, schema_path: str) -> Dict[str, Any]:
        if not os.path.isfile(schema_path):
            raise FileNotFoundConfigError(schema_path, f"Schema file not found: {schema_path}")
        try:
            with open(schema_path, 'r', encoding='utf-8') as file:
                return json.load(file)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Error parsing schema file {schema_path}: {e}") from e
