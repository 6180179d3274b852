"""Process-wide state: config, Graph API client, log buffer and the user token."""

import logging
import threading

from .config import Config, load_config
from .graph_api import GraphAPIClient, is_usable_token
from .logbuffer import setup_logging

logger = logging.getLogger('adfetch.context')


class AppContext:
    def __init__(self, config: Config = None, graph: GraphAPIClient = None, log_buffer=None):
        self.config = config or load_config()
        self.graph = graph or GraphAPIClient.from_config(self.config)
        self.log_buffer = log_buffer or setup_logging(self.config.log_buffer_size)
        self._user_token = ''
        self._token_lock = threading.Lock()

    def active_token(self):
        """The user-supplied token if one was accepted, else the configured one, else None."""
        with self._token_lock:
            token = self._user_token or self.config.facebook_access_token
        return token if is_usable_token(token) else None

    def set_user_token(self, token) -> bool:
        """Verify token and cache it on success."""
        if not self.graph.verify_token(token):
            return False
        with self._token_lock:
            self._user_token = token
        logger.info('User-provided token accepted')
        return True

    def logs(self):
        return self.log_buffer.entries()

    def check_default_token(self):
        if not self.graph.verify_token(self.config.facebook_access_token):
            logger.warning('The configured Facebook token looks invalid or expired. '
                           'Provide a valid token through the web interface.')
