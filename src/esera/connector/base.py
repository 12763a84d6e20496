import logging
from abc import abstractmethod

from esera.conduit.base import Conduit
from esera.support.events import EventSource

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """ Indicates an error condition with a connection. """


class ConnectionNotConnectedError(ConnectorError):
    """ Raised when the conduit of a connector is requested while it is disconnected. """


class ConnectorDisconnectedEvent:
    """ Fired by a connector after its conduit has been closed. """
    def __init__(self, connector):
        self.connector = connector


class Connector:
    """
    Opens and closes the conduit to an endpoint. Subclasses provide the endpoint and the
    _connect()/_disconnect() template methods.

    Listeners added to events receive a ConnectorDisconnectedEvent each time the conduit is closed.
    """

    def __init__(self):
        self.events = EventSource()
        self._conduit = None

    @property
    @abstractmethod
    def endpoint(self):
        """ the endpoint that this connector reaches out to """
        raise NotImplementedError

    @property
    def connected(self):
        return self._conduit is not None and self._conduit.open

    def connect(self):
        """
        Opens the conduit. Does nothing when already connected.
        Raises ConnectorError if the connection cannot be established.
        """
        if self.connected:
            return
        self._conduit = self._connect()

    def disconnect(self):
        if self._conduit is None:
            return
        self._disconnect()
        self._conduit.close()
        self._conduit = None
        self.events.fire(ConnectorDisconnectedEvent(self))

    @abstractmethod
    def _connect(self) -> Conduit:
        """ Template method for subclasses to perform the connection.
            If connection is not possible, an exception should be thrown
        """
        raise NotImplementedError

    @abstractmethod
    def _disconnect(self):
        """ called before the conduit is closed. """
        raise NotImplementedError

    @property
    def conduit(self) -> Conduit:
        """
        The open conduit.
        raises ConnectionNotConnectedError if not connected
        """
        if not self.connected:
            raise ConnectionNotConnectedError(str(self.endpoint))
        return self._conduit
