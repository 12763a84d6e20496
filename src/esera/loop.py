"""
Runs a session on a background thread. The thread waits for data from the controller, bounded by the
poll interval and the next task deadline, and feeds the session with what arrives and with the
passing of time.
"""
import logging
import select
import threading
import time

from esera.config.settings import ConnectionConfig, SessionConfig
from esera.connector.base import ConnectorDisconnectedEvent
from esera.connector.socketconn import SocketConnector, TCPServerEndpoint
from esera.session import Session

logger = logging.getLogger(__name__)

READ_SIZE = 4096


class SessionLoop:
    """
    Pumps a conduit into a session on a daemon thread. The session is attached to the conduit when
    the thread starts and detached when it stops, which happens when stop() is called, the
    controller closes the connection or the connector is disconnected.
    Exceptions raised while pumping are logged and the loop carries on.

    :param session: the Session to drive
    :param conduit: an open conduit whose target can be passed to select()
    :param poll_interval: the longest time in seconds between two polls of the session
    :param connector: when given, the connector is disconnected on shutdown instead of closing
        the conduit directly, and a disconnect from elsewhere stops the loop
    """

    def __init__(self, session: Session, conduit, poll_interval=0.5, current_time=time.monotonic,
                 connector=None, log=logger):
        self.session = session
        self.conduit = conduit
        self.poll_interval = poll_interval
        self.current_time = current_time
        self.connector = connector
        self.logger = log
        self.stop_event = threading.Event()
        self.background_thread = None
        if connector is not None:
            connector.events += self._connector_event

    def start(self):
        if self.background_thread is None:
            t = threading.Thread(target=self._run)
            t.daemon = True
            self.background_thread = t
            t.start()

    def _run(self):
        self._do(self.startup)
        while self.running():
            self._do(self.loop)
        self._do(self.shutdown)
        self.logger.info("session thread exiting")

    def _do(self, callme):
        try:
            callme()
        except Exception as e:
            self.logger.exception(e)

    def running(self):
        return not self.stop_event.is_set()

    def stop(self):
        self.stop_event.set()
        thread = self.background_thread
        self.background_thread = None
        if thread and thread is not threading.current_thread():
            thread.join()

    def _connector_event(self, event):
        if isinstance(event, ConnectorDisconnectedEvent):
            self.logger.info("connector disconnected, stopping")
            self.stop_event.set()
            self.session.detach()

    def startup(self):
        self.session.attach(self.conduit)

    def timeout(self):
        """ the time to wait for data before the session must be polled. """
        deadline = self.session.deadline
        if deadline is None:
            return self.poll_interval
        return max(0, min(self.poll_interval, deadline - self.current_time()))

    def loop(self):
        if not self.conduit.open:
            self.logger.info("conduit closed, stopping")
            self.stop_event.set()
            return
        readable, _, _ = select.select([self.conduit.target], [], [], self.timeout())
        if readable:
            data = self.conduit.input.read(READ_SIZE)
            if not data:
                self.logger.info("connection closed by controller")
                self.stop_event.set()
                return
            self.session.data_received(data)
        self.session.poll()

    def shutdown(self):
        self.session.detach()
        if self.connector is not None:
            self.connector.events -= self._connector_event
            self.connector.disconnect()
        else:
            self.conduit.close()


def open_session(connection: ConnectionConfig, config: SessionConfig=None) -> SessionLoop:
    """
    Connects to the controller and starts a session on a background thread.
    Raises ConnectorError if the controller cannot be reached.
    :return: the running SessionLoop. Its session attribute is the Session.
    """
    endpoint = TCPServerEndpoint.parse(connection.host, connection.port)
    connector = SocketConnector(endpoint, timeout=connection.connect_timeout)
    connector.connect()
    session = Session(config)
    loop = SessionLoop(session, connector.conduit, connection.poll_interval, connector=connector)
    loop.start()
    return loop
