"""
Runtime configuration.
Defaults below, then an optional JSON config file, then environment variables.
"""

import os
import json
from dataclasses import dataclass, fields
from pathlib import Path

TOKEN_PLACEHOLDER = 'REPLACE_WITH_YOUR_NEW_FACEBOOK_ACCESS_TOKEN'
CONFIG_FILE = 'config.json'

# env var -> config field
ENV_KEYS = {
    'FACEBOOK_ACCESS_TOKEN': 'facebook_access_token',
    'PORT': 'port',
    'DOWNLOAD_DIR': 'download_dir',
    'MAX_CONCURRENT_DOWNLOADS': 'max_concurrent_downloads',
    'DOWNLOAD_TIMEOUT': 'download_timeout',
    'REQUEST_TIMEOUT': 'request_timeout',
    'GRAPH_API_BASE': 'graph_api_base',
    'GRAPH_API_VERSION': 'graph_api_version',
    'DEFAULT_COUNTRY': 'default_country',
    'SEARCH_LANGUAGES': 'search_languages',
    'LOG_BUFFER_SIZE': 'log_buffer_size',
    'OPEN_BROWSER': 'open_browser',
}

# camelCase keys accepted in config.json
FILE_ALIASES = {
    'facebookAccessToken': 'facebook_access_token',
    'downloadDir': 'download_dir',
    'maxConcurrentDownloads': 'max_concurrent_downloads',
}


@dataclass
class Config:
    facebook_access_token: str = TOKEN_PLACEHOLDER
    port: int = 3001
    download_dir: Path = Path('downloads')
    max_concurrent_downloads: int = 8
    download_timeout: float = 60.0
    request_timeout: float = 30.0
    graph_api_base: str = 'https://graph.facebook.com'
    graph_api_version: str = 'v20.0'
    default_country: str = 'BR'
    search_languages: str = ''
    log_buffer_size: int = 1000
    open_browser: bool = False

    @property
    def graph_api_url(self) -> str:
        return f"{self.graph_api_base.rstrip('/')}/{self.graph_api_version}"


def _coerce(name: str, value):
    kind = {f.name: f.type for f in fields(Config)}[name]
    if kind in (int, 'int'):
        n = int(value)
        if n < 1:
            raise ValueError(f'{name} must be a positive integer, got {value!r}')
        return n
    if kind in (float, 'float'):
        return float(value)
    if kind in (bool, 'bool'):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
    if kind in (Path, 'Path'):
        return Path(value)
    return str(value)


def load_config(path=None, environ=None) -> Config:
    """Build a Config from the JSON file (if present) and the environment."""
    environ = os.environ if environ is None else environ
    values = {}

    cfg_path = Path(path or environ.get('ADFETCH_CONFIG') or CONFIG_FILE)
    if cfg_path.is_file():
        with open(cfg_path, encoding='utf-8') as f:
            raw = json.load(f)
        known = {f.name for f in fields(Config)}
        for key, value in raw.items():
            name = FILE_ALIASES.get(key, key)
            if name in known and value is not None:
                values[name] = value

    for env_key, name in ENV_KEYS.items():
        if environ.get(env_key):
            values[name] = environ[env_key]

    return Config(**{name: _coerce(name, value) for name, value in values.items()})
