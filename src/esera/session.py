"""
The session ties the protocol components together for one connection to an ESERA 1-Wire controller.

Received bytes are framed into lines and classified. Events are only logged, device list rows update
the directory, telemetry is published to subscribers and everything else resolves the command at the
head of the task queue. Commands are only ever sent by the task queue, one at a time.

The session is driven by two triggers, data_received() and poll(). Both are normally called from
the SessionLoop thread; the public methods hold the session lock so they may also be called from
other threads.
"""
import logging
import threading
import time

from esera.config.settings import SessionConfig
from esera.connector.base import ConnectorError
from esera.directory import DeviceDirectory
from esera.dispatch import DeviceRegistry, DeviceSubscriber, ReadingDispatcher
from esera.initializer import SessionInitializer
from esera.protocol.classifier import LineClassifier, LineKind, parse_setting, parse_status
from esera.protocol.framing import LineFramer
from esera.protocol.tasks import ERROR_PATTERN, HandlerKind, TaskQueue
from esera.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

UNKNOWN = 'UNKNOWN'

INFO = (
    ('FW', "FW version"),
    ('HW', "HW version"),
    ('SERIAL', "serial number"),
    ('ID', "ESERA product number"),
    ('DOM', "date of manufacturing"),
)

SETTINGS = (
    ('RUN', "1=controller sending readings"),
    ('CONTNO', "ESERA controller number"),
    ('KALREC', "1=keep-alive signal expected by controller"),
    ('KALRECTIME', "time period in seconds used for expected keep-alive messages"),
    ('KALSEND', "1=controller sending keep-alive messages"),
    ('KALSENDTIME', "time period in seconds used for sending keep-alive messages"),
    ('DATASEND', "aka DATAPRINT, 0=list responses are returned in a single line"),
    ('DATATIME', "time period used for data delivery"),
    ('OWDID', "1=return readings with 1-wire ID instead of controller ID"),
    ('OWDIDFORMAT', "selects format of 1-wire ID"),
    ('SEARCH_MODE', "2=cyclic search for new devices"),
    ('SEARCHTIME', "time period in seconds used to search for new devices"),
    ('POLLTIME', "time period in seconds used with periodic reads from devices"),
    ('DS2408INV', "1=invert readings from DS2408 devices"),
)

# keys the controller answers with that are stored under another name
SETTING_ALIASES = {
    'DATAPRINT': 'DATASEND',
    'SEARCH': 'SEARCH_MODE',
    'SEARCHMODE': 'SEARCH_MODE',
}


class SessionNotConnectedError(ConnectorError):
    """ Raised when a command is to be sent while the session has no open conduit. """


class SessionState(CommonEqualityMixin, StringerMixin):
    """
    The connection-scoped state of a session.

    initialized is set when the start-up script completes, and only then is telemetry accepted.
    refresh_in_progress is set while a directory refresh is queued. settings mirrors the last
    response received for each controller setting.
    """

    def __init__(self):
        self.initialized = False
        self.refresh_in_progress = False
        self.settings = {}
        self.raw_command = None
        self.raw_response = None

    def reset(self):
        self.__init__()


def status_text(status):
    """
    >>> status_text('0')
    'ok'
    >>> status_text('2')
    'error (2)'
    >>> status_text(None)
    'unknown'
    """
    if status is None:
        return 'unknown'
    return 'ok' if status.strip() == '0' else 'error (%s)' % status


class Session:
    """
    A session with one controller.

    :param config: SessionConfig with the timing and controller values
    :param current_time: clock used for task timers
    """

    def __init__(self, config: SessionConfig=None, current_time=time.monotonic, log=logger):
        self.config = config if config is not None else SessionConfig()
        self.logger = log
        self.lock = threading.RLock()
        self.state = SessionState()
        self.conduit = None
        self.framer = LineFramer()
        self.classifier = LineClassifier()
        self.tasks = TaskQueue(self._send, self._handle, current_time=current_time,
                               response_timeout=self.config.response_timeout,
                               sync_timeout=self.config.sync_timeout)
        self.directory = DeviceDirectory(self.tasks, self.state, self.config.list_wait)
        self.dispatcher = ReadingDispatcher(self.directory, self.request_directory_refresh)
        self.registry = DeviceRegistry()
        self.dispatcher.subscribe(self._route_to_device)
        self.initializer = SessionInitializer(self.tasks, self.directory, self.config)
        self._handlers = {
            HandlerKind.SETTINGS_CAPTURE: self._capture_setting,
            HandlerKind.CONTROLLER_READY: self._controller_ready,
            HandlerKind.STATUS: self._capture_status,
            HandlerKind.RAW_CAPTURE: self._capture_raw,
            HandlerKind.ERROR_LOGGER: self._log_error,
            HandlerKind.UNEXPECTED_LOGGER: self._log_unexpected,
            HandlerKind.ART_ASSIGN_ACK: self._assign_acknowledged,
            HandlerKind.ART_ASSIGN_ERROR: self._assign_failed,
            HandlerKind.INIT_COMPLETE: self._init_complete,
            HandlerKind.REFRESH_COMPLETE: self._refresh_complete,
        }

    @property
    def connected(self):
        conduit = self.conduit
        return conduit is not None and conduit.open

    @property
    def initialized(self):
        return self.state.initialized

    def attach(self, conduit):
        """ starts a session over a newly opened conduit. """
        with self.lock:
            self.conduit = conduit
            self.initialize()

    def detach(self):
        """ ends the session when the conduit is closed. All state is discarded. """
        with self.lock:
            self.conduit = None
            self._discard()

    def initialize(self):
        """ discards all session state and queues the start-up script. """
        with self.lock:
            self._discard()
            self.initializer.run()

    def _discard(self):
        self.tasks.clear()
        self.directory.clear()
        self.state.reset()
        self.framer.reset()

    def data_received(self, data: bytes):
        with self.lock:
            for line in self.framer.feed(data):
                try:
                    self.line_received(line)
                except Exception as e:
                    self.logger.exception("error processing line %r: %s" % (line, e))

    def line_received(self, line):
        with self.lock:
            classified = self.classifier.classify(line, self.state.initialized)
            if classified is None:
                return
            kind = classified.kind
            if kind is LineKind.LIST_RECORD:
                self.directory.apply_list(classified.records)
            elif kind is LineKind.TELEMETRY:
                self.dispatcher.publish(classified)
            elif kind is LineKind.COMMAND_RESPONSE:
                self.tasks.handle_response(line)

    def poll(self, current_time=None):
        """ expires the active task's timer when it is due.
        :return: True if a task was resolved """
        with self.lock:
            return self.tasks.poll(current_time)

    @property
    def deadline(self):
        """ the time the next task timer expires, or None. """
        return self.tasks.deadline

    def _send(self, command):
        if not self.connected:
            raise SessionNotConnectedError("cannot send %r, session not connected" % command)
        output = self.conduit.output
        output.write(command.encode('ascii'))
        output.flush()

    # queue and directory

    def enqueue_command(self, command, expected, on_success, error=ERROR_PATTERN,
                        on_error=HandlerKind.ERROR_LOGGER, on_unexpected=HandlerKind.UNEXPECTED_LOGGER,
                        wait=None):
        with self.lock:
            return self.tasks.enqueue_command(command, expected, on_success, error, on_error, on_unexpected,
                                              wait)

    def enqueue_posted_write(self, command, wait):
        with self.lock:
            return self.tasks.enqueue_posted_write(command, wait)

    def enqueue_sync(self, command, expected, on_success):
        with self.lock:
            return self.tasks.enqueue_sync(command, expected, on_success)

    def subscribe(self, handler):
        """ registers a callable receiving every ReadingEnvelope.
        :return: a Subscription """
        with self.lock:
            return self.dispatcher.subscribe(handler)

    def add_device(self, subscriber: DeviceSubscriber):
        """ registers a subscriber for the readings of one device. """
        with self.lock:
            return self.registry.register(self, subscriber)

    def remove_device(self, hardware_id):
        with self.lock:
            return self.registry.unregister(self, hardware_id)

    def _route_to_device(self, envelope):
        subscriber = self.registry.lookup(self, envelope.hardware_id)
        if subscriber is not None:
            subscriber(envelope)

    def request_directory_refresh(self, full=True, hardware_id=None):
        with self.lock:
            return self.directory.refresh(full, hardware_id)

    def lookup_hardware_id(self, local_id):
        with self.lock:
            return self.directory.hardware_id(local_id)

    def lookup_local_id(self, hardware_id):
        with self.lock:
            return self.directory.lookup_local_id(hardware_id)

    # controller operations

    def info(self):
        """ the controller's identification as (key, value, description) tuples. """
        with self.lock:
            return [(key, self.state.settings.get(key, UNKNOWN), description) for key, description in INFO]

    def settings(self):
        """ the controller's operating mode settings as (key, value, description) tuples. """
        with self.lock:
            return [(key, self.state.settings.get(key, UNKNOWN), description) for key, description in SETTINGS]

    def devices(self):
        """ the known devices as (hardware id, controller id, device type) tuples. """
        with self.lock:
            return [(e.hardware_id, e.local_id, e.device_type) for e in self.directory.entries]

    def status(self):
        """
        The known devices as (hardware id, controller id, device type, status text) tuples.
        The status is queried again for the next call. When no devices are known, the directory is
        refreshed and the list is empty.
        """
        with self.lock:
            if not len(self.directory):
                self.logger.info("no device information found, refreshing list")
                self.directory.refresh(full=True)
                return []
            result = [(e.hardware_id, e.local_id, e.device_type, status_text(e.status))
                      for e in self.directory.entries]
            self.refresh_status()
            return result

    def refresh_status(self):
        """ queries the status of each known device.
        :return: the number of queries queued """
        with self.lock:
            entries = [e for e in self.directory.entries if e.local_id is not None]
            if not entries:
                self.logger.warning("no devices known")
                return 0
            self.directory.clear_status()
            for entry in entries:
                self.tasks.enqueue_command('get,owd,status,%s' % entry.local_id, '1_OWD_', HandlerKind.STATUS,
                                           error='ERR')
            return len(entries)

    def refresh(self):
        """ queries device status and then reads the directory and controller settings again. """
        with self.lock:
            self.refresh_status()
            self.directory.refresh(full=True)

    def raw(self, command):
        """ sends a command as given. The single response is kept in state.raw_response. """
        with self.lock:
            command = command.lower()
            self.logger.info("command to controller: %s" % command)
            self.state.raw_command = command
            self.state.raw_response = None
            return self.tasks.enqueue_command(command, '1_', HandlerKind.RAW_CAPTURE)

    def reset_tasks(self):
        """ abandons all queued tasks. """
        with self.lock:
            self.tasks.clear()
            self.state.refresh_in_progress = False

    def reset_controller(self):
        with self.lock:
            self.logger.info("reset controller")
            self.initialize()

    def send_output(self, hardware_id, command):
        """
        Sends a command that sets an output. The controller's reply cannot be told apart from
        regular readings, so the command is sent as a posted write.
        """
        with self.lock:
            self.logger.debug("output command for %s: %s" % (hardware_id, command))
            return self.tasks.enqueue_posted_write(command, self.config.output_wait)

    def assign(self, hardware_id, product_number):
        """
        Programs the product type of a device and re-reads its directory entry.
        :return: True if the command was queued
        """
        with self.lock:
            local_id = self.directory.lookup_local_id(hardware_id)
            if local_id is None:
                self.logger.error("error looking up controller id for assign request: %s" % hardware_id)
                return False
            command = 'set,owd,art,%s,%s' % (local_id, product_number)
            self.logger.info("assign: %s %s %s" % (hardware_id, product_number, command))
            self.tasks.enqueue_command(command, '1_ART', HandlerKind.ART_ASSIGN_ACK,
                                       on_error=HandlerKind.ART_ASSIGN_ERROR)
            self.directory.refresh(full=False, hardware_id=hardware_id)
            return True

    # response handlers

    def _handle(self, kind, task, line):
        self._handlers[kind](task, line)

    def _capture_setting(self, task, line):
        setting = parse_setting(line)
        if setting is None:
            self.logger.error("unexpected number of response fields for %s: %s" % (task.command, line))
            return
        key, value = setting
        self.state.settings[SETTING_ALIASES.get(key, key)] = value

    def _controller_ready(self, task, line):
        self.logger.info("controller ready")

    def _capture_status(self, task, line):
        status = parse_status(line)
        if status is None:
            self.logger.error("could not extract controller id from status response: %s" % line)
            return
        self.directory.set_status(*status)

    def _capture_raw(self, task, line):
        self.logger.info("response to raw command: %s" % line)
        self.state.raw_response = line

    def _log_error(self, task, line):
        self.logger.error("error response, command: %s, response: %s, ignoring the response" %
                          (task.command, line.replace(';', '')))

    def _log_unexpected(self, task, line):
        if line is None:
            self.logger.error("no response, command: %s, continuing" % task.command)
        else:
            self.logger.error("unexpected response, command: %s, response: %s, ignoring the response" %
                              (task.command, line.replace(';', '')))

    def _assign_acknowledged(self, task, line):
        fields = line.replace(';', '').split('|')
        if len(fields) != 3:
            self.logger.error("unexpected number of response fields for ART response %s" % line)
            return
        self.logger.info("product type assigned: %s" % line)

    def _assign_failed(self, task, line):
        self.logger.error("product type assignment failed, command: %s, response: %s" % (task.command, line))

    def _init_complete(self, task, line):
        self.state.initialized = True
        self.logger.info("init complete")

    def _refresh_complete(self, task, line):
        self.state.refresh_in_progress = False
        self.logger.debug("refresh complete")
