from logging import getLogger

from .config import ClientConfig, SslMode
from .errors import BinlogClientError


logger = getLogger(__name__)


class HandshakeNegotiator:
    """Greeting, optional SSL upgrade and authentication of a fresh channel."""

    def __init__(self, config: ClientConfig, protocol, ssl_context_factory):
        self.config = config
        self.protocol = protocol
        self.ssl_context_factory = ssl_context_factory

    def negotiate(self, channel):
        greeting = self.protocol.read_greeting(channel)
        self.try_upgrade_to_ssl(channel, greeting)
        self.protocol.authenticate(
            channel, greeting, self.config.schema, self.config.username, self.config.password,
        )
        channel.authentication_complete()
        return greeting

    def try_upgrade_to_ssl(self, channel, greeting) -> bool:
        ssl_mode = self.config.ssl_mode
        if ssl_mode == SslMode.DISABLED:
            return False

        if not greeting.supports_ssl:
            if ssl_mode.requires_ssl:
                raise BinlogClientError.transport('MySQL server does not support SSL')
            logger.debug('server does not support SSL, continuing without it')
            return False

        self.protocol.write_ssl_request(channel, greeting, self.config.schema)
        ssl_context = self.ssl_context_factory(ssl_mode)
        server_hostname = self.config.host if ssl_mode == SslMode.VERIFY_IDENTITY else None
        channel.upgrade_to_ssl(ssl_context, server_hostname)
        logger.info('SSL enabled')
        return True
