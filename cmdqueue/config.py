import os
import select
import tempfile
from typing import Dict, Mapping, Optional
from .exceptions import ConfigurationError
from .models import Config


ENV_PREFIX = 'CMDQUEUE_'

PIPE_BUF = getattr(select, 'PIPE_BUF', 512)


def default_runtime_dir(environ: Mapping[str, str]) -> str:
    xdg_runtime_dir = environ.get('XDG_RUNTIME_DIR')
    if xdg_runtime_dir and os.path.isdir(xdg_runtime_dir):
        return xdg_runtime_dir
    if os.path.isdir('/dev/shm'):
        return '/dev/shm'
    return tempfile.gettempdir()


class ConfigManager:
    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self._overrides: Dict[str, str] = {}
        self._defaults = {
            'runtime_dir': default_runtime_dir(self.environ),
            'scope': 'user',
            'consumers': '3',
            'queue_capacity': '256',
            'tick_seconds': '1.0',
            'max_message_bytes': '1024',
            'submit_timeout_seconds': '5.0',
            'startup_grace_seconds': '1.0',
            'shell': '/bin/sh',
        }

    def get(self, key: str) -> Optional[str]:
        if key in self._overrides:
            return self._overrides[key]
        env_value = self.environ.get(ENV_PREFIX + key.upper())
        if env_value:
            return env_value
        return self._defaults.get(key)

    def set(self, key: str, value: str):
        self._overrides[key] = str(value)

    def list_all(self) -> Dict[str, str]:
        result = self._defaults.copy()

        for env_key, value in self.environ.items():
            if env_key.startswith(ENV_PREFIX) and value:
                result[env_key[len(ENV_PREFIX):].lower()] = value

        result.update(self._overrides)
        return result

    def get_config(self) -> Config:
        config_dict = self.list_all()

        config = Config(
            runtime_dir=config_dict['runtime_dir'],
            scope=config_dict['scope'],
            consumers=self._as_int(config_dict, 'consumers'),
            queue_capacity=self._as_int(config_dict, 'queue_capacity'),
            tick_seconds=self._as_float(config_dict, 'tick_seconds'),
            max_message_bytes=self._as_int(config_dict, 'max_message_bytes'),
            submit_timeout_seconds=self._as_float(config_dict, 'submit_timeout_seconds'),
            startup_grace_seconds=self._as_float(config_dict, 'startup_grace_seconds'),
            shell=config_dict['shell'],
            log_dir=config_dict.get('log_dir')
        )
        self._validate(config)
        return config

    def _as_int(self, config_dict: Dict[str, str], key: str) -> int:
        try:
            return int(config_dict[key])
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got '{config_dict[key]}'")

    def _as_float(self, config_dict: Dict[str, str], key: str) -> float:
        try:
            return float(config_dict[key])
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got '{config_dict[key]}'")

    def _validate(self, config: Config):
        if config.scope not in ('user', 'machine'):
            raise ConfigurationError(f"scope must be 'user' or 'machine', got '{config.scope}'")
        if config.consumers < 1:
            raise ConfigurationError("consumers must be at least 1")
        if config.queue_capacity < 1:
            raise ConfigurationError("queue_capacity must be at least 1")
        if config.tick_seconds <= 0:
            raise ConfigurationError("tick_seconds must be positive")
        if not 2 <= config.max_message_bytes <= PIPE_BUF:
            raise ConfigurationError(
                f"max_message_bytes must be between 2 and {PIPE_BUF} so submissions stay atomic"
            )
