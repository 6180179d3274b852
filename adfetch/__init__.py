"""
AdFetch
Search the Facebook Ad Library and download ad creatives to local disk.
"""

from .config import Config, load_config
from .context import AppContext
from .errors import AdFetchError, CredentialError, FetchError, UpstreamError, ValidationError

__version__ = "0.1.0"

__all__ = [
    'AdFetchError',
    'AppContext',
    'Config',
    'CredentialError',
    'FetchError',
    'UpstreamError',
    'ValidationError',
    'load_config',
]
