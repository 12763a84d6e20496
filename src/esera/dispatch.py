"""
Republishes telemetry to subscribers as reading envelopes.

An envelope carries the device type and both ids of the device alongside the raw value. Interpreting
the value (temperatures, counters, digital inputs) is left to the subscribers.
"""
import logging
import re
from collections import namedtuple

from esera.protocol.classifier import ClassifiedLine
from esera.support.events import EventSource

logger = logging.getLogger(__name__)

ReadingEnvelope = namedtuple('ReadingEnvelope', 'device_type hardware_id local_id sub_index value')

DS_FAMILY = re.compile(r'^DS([0-9A-F]+)')
# types the controller reports for its own built-in I/O, which cannot be programmed
BUILT_IN_TYPES = re.compile(r'^SYS3')


class Subscription:
    """ The handle returned when subscribing to readings. """

    def __init__(self, source: EventSource, handler):
        self.source = source
        self.handler = handler

    @property
    def active(self):
        return self.handler in self.source.handlers()

    def cancel(self):
        self.source -= self.handler


class ReadingDispatcher:
    """
    Converts telemetry lines into envelopes and notifies subscribers synchronously, in the order they
    subscribed.

    :param directory: the DeviceDirectory used to look up device type and controller-local id
    :param request_refresh: callable invoked with no arguments when a reading arrives for a device
        the directory does not know
    """

    def __init__(self, directory, request_refresh, log=logger):
        self.directory = directory
        self.request_refresh = request_refresh
        self.logger = log
        self.readings = EventSource()

    def subscribe(self, handler) -> Subscription:
        """ registers a callable that receives each ReadingEnvelope. """
        self.readings += handler
        return Subscription(self.readings, handler)

    def publish(self, classified: ClassifiedLine):
        """
        Publishes the readings in a telemetry line. Readings for devices whose controller-local id or
        device type is unknown are dropped, and a directory refresh is requested once for the line.
        :return: the number of envelopes published
        """
        published = 0
        refresh_requested = False
        for sample in classified.records:
            local_id = self.directory.local_id(sample.hardware_id)
            device_type = self.directory.device_type(sample.hardware_id)
            if local_id is None or device_type is None:
                self.logger.info("received data for %s which is not known, ignoring data and refreshing device list"
                                 % sample.hardware_id)
                if not refresh_requested:
                    refresh_requested = True
                    self.request_refresh()
                continue
            envelope = ReadingEnvelope(device_type, sample.hardware_id, local_id, sample.sub_index, sample.value)
            self.logger.debug("passing reading to subscribers: %s" % (envelope,))
            self.notify(envelope)
            published += 1
        return published

    def notify(self, envelope: ReadingEnvelope):
        """ passes an envelope to each subscriber. A subscriber that raises does not stop the others. """
        for handler in self.readings.handlers():
            try:
                handler(envelope)
            except Exception as e:
                self.logger.exception("subscriber %s failed on %s: %s" % (handler, envelope, e))


class DeviceSubscriber:
    """
    Base class for the consumer of one device's readings.

    The subscriber declares the device type it expects. When the controller reports a different
    type, the subscriber asks its owner to program the expected product type, and the reading is
    still passed on to on_reading().

    :param hardware_id: the device's hardware id
    :param device_type: the expected device type, such as DS1820 or 11220
    """

    def __init__(self, hardware_id, device_type, log=logger):
        self.hardware_id = hardware_id
        self.device_type = device_type.upper()
        self.local_id = None
        self.owner = None
        self.logger = log

    def __call__(self, envelope: ReadingEnvelope):
        if envelope.hardware_id != self.hardware_id:
            return
        self.local_id = envelope.local_id
        if envelope.device_type.upper() != self.device_type:
            self.logger.warning("%s: unexpected device type %s, expected %s" %
                                (self.hardware_id, envelope.device_type, self.device_type))
            self.reassign()
        self.on_reading(envelope)

    @property
    def product_number(self):
        """
        The product number the controller is programmed with for the expected type, or None when
        the type cannot be programmed.

        >>> DeviceSubscriber('660000001A590029', 'DS2408').product_number
        '2408'
        >>> DeviceSubscriber('4C00000123456789', '11220').product_number
        '11220'
        >>> DeviceSubscriber('SYS3', 'SYS3').product_number is None
        True
        """
        if BUILT_IN_TYPES.match(self.device_type):
            return None
        match = DS_FAMILY.match(self.device_type)
        return match.group(1) if match else self.device_type

    def reassign(self):
        """ asks the owner to program the expected product type. """
        product = self.product_number
        if product is None or self.owner is None:
            return
        self.owner.assign(self.hardware_id, product)

    def on_reading(self, envelope: ReadingEnvelope):
        """ template method called with each reading for the device. """
        pass


class DeviceRegistry:
    """
    The subscribers of a session's devices, keyed by owner and hardware id.
    """

    def __init__(self):
        self._devices = {}

    def __len__(self):
        return len(self._devices)

    def register(self, owner, subscriber: DeviceSubscriber):
        """ adds a subscriber, replacing any subscriber for the same owner and hardware id. """
        subscriber.owner = owner
        self._devices[(owner, subscriber.hardware_id)] = subscriber
        return subscriber

    def unregister(self, owner, hardware_id):
        subscriber = self._devices.pop((owner, hardware_id), None)
        if subscriber is not None:
            subscriber.owner = None
        return subscriber

    def lookup(self, owner, hardware_id) -> DeviceSubscriber:
        return self._devices.get((owner, hardware_id))

    def devices(self, owner):
        return [subscriber for (o, _), subscriber in self._devices.items() if o is owner]
