import logging
import socket

from esera.conduit.base import Conduit
from esera.conduit.socket_conduit import SocketConduit
from esera.connector.base import Connector, ConnectorError

logger = logging.getLogger(__name__)

# the port the controller listens on when the address does not name one
DEFAULT_PORT = 5000


class TCPServerEndpoint:
    """
    Describes the TCP endpoint of a controller.
    """
    def __init__(self, host, port=DEFAULT_PORT):
        self.host = host
        self.port = port

    @classmethod
    def parse(cls, address, default_port=DEFAULT_PORT):
        """
        Parses a "host[:port]" address.

        >>> TCPServerEndpoint.parse('192.168.0.15').key()
        '192.168.0.15:5000'
        >>> TCPServerEndpoint.parse('owc.local:5001').key()
        'owc.local:5001'
        """
        host, sep, port = address.rpartition(':')
        if sep and port.isdigit():
            return cls(host, int(port))
        return cls(address, default_port)

    def key(self):
        return str(self.host) + ':' + str(self.port)

    def __str__(self):
        return self.key()


class SocketConnector(Connector):
    """
    A connector that communicates with the controller via a TCP socket.
    """
    def __init__(self, endpoint: TCPServerEndpoint, timeout=5.0, report_errors=True):
        """
        :param endpoint: the controller endpoint to connect to
        :param timeout: the connect timeout in seconds. Once connected the socket is blocking.
        """
        super().__init__()
        self._endpoint = endpoint
        self._timeout = timeout
        self._report_errors = report_errors

    @property
    def endpoint(self):
        return self._endpoint

    def _connect(self) -> Conduit:
        address = (self._endpoint.host, self._endpoint.port)
        try:
            sock = socket.create_connection(address, timeout=self._timeout)
            sock.settimeout(None)
            logger.info("opened socket to %s" % self._endpoint)
            return SocketConduit(sock)
        except OSError as e:
            method = logger.warning if self._report_errors else logger.debug
            method("error opening socket to %s: %s" % (self._endpoint, e))
            raise ConnectorError(str(self._endpoint)) from e

    def _disconnect(self):
        logger.info("closing socket to %s" % self._endpoint)
