import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_, none, contains_exactly, empty

from esera.dispatch import DeviceRegistry, DeviceSubscriber, ReadingDispatcher, ReadingEnvelope
from esera.protocol.classifier import ClassifiedLine, LineKind, ListRecord, parse_telemetry


def telemetry(line):
    return ClassifiedLine(LineKind.TELEMETRY, line, parse_telemetry(line))


class FakeDirectory:
    def __init__(self, *records):
        self.records = {r.hardware_id: r for r in records}

    def local_id(self, hardware_id):
        record = self.records.get(hardware_id)
        return record.local_id if record else None

    def device_type(self, hardware_id):
        record = self.records.get(hardware_id)
        return record.device_type if record else None


class ReadingDispatcherTest(unittest.TestCase):

    def setUp(self):
        self.directory = FakeDirectory(ListRecord('1', '660000001A590029', 'DS2408'))
        self.refresh = Mock()
        self.sut = ReadingDispatcher(self.directory, self.refresh, log=Mock())
        self.received = []
        self.sut.subscribe(self.received.append)

    def test_known_device_published(self):
        assert_that(self.sut.publish(telemetry('1_660000001A590029_1|32')), is_(1))
        assert_that(self.received, contains_exactly(ReadingEnvelope('DS2408', '660000001A590029', '1', 1, '32')))
        self.refresh.assert_not_called()

    def test_reading_without_sub_index(self):
        self.sut.publish(telemetry('1_660000001A590029|2150'))
        assert_that(self.received[0].sub_index, is_(0))

    def test_unknown_device_dropped_and_refreshed_once(self):
        self.directory.records.clear()
        assert_that(self.sut.publish(telemetry('1_ABCDEF1234567890_0|100')), is_(0))
        assert_that(self.received, is_(empty()))
        self.refresh.assert_called_once_with()

    def test_one_refresh_per_line(self):
        assert_that(self.sut.publish(telemetry('1_ABCD_1|0;1_ABCD_2|1;1_660000001A590029_3|0;')), is_(1))
        self.refresh.assert_called_once_with()

    def test_pending_device_type_dropped(self):
        self.directory.records['660000001A590029'] = ListRecord('1', '660000001A590029', None)
        assert_that(self.sut.publish(telemetry('1_660000001A590029_1|32')), is_(0))
        self.refresh.assert_called_once_with()

    def test_subscribers_notified_in_registration_order(self):
        order = Mock()
        self.sut.subscribe(order.first)
        self.sut.subscribe(order.second)
        self.sut.publish(telemetry('1_660000001A590029_2|00100000'))
        envelope = ReadingEnvelope('DS2408', '660000001A590029', '1', 2, '00100000')
        assert_that(order.mock_calls, is_([call.first(envelope), call.second(envelope)]))

    def test_failing_subscriber_does_not_stop_the_others(self):
        failing = Mock(side_effect=ValueError("bad reading"))
        later = Mock()
        self.sut.subscribe(failing)
        self.sut.subscribe(later)
        assert_that(self.sut.publish(telemetry('1_660000001A590029_1|32;1_660000001A590029_2|1;')), is_(2))
        assert_that(failing.call_count, is_(2))
        assert_that(later.call_count, is_(2))
        assert_that(len(self.received), is_(2))
        assert_that(self.sut.logger.exception.call_count, is_(2))

    def test_cancelled_subscription_not_notified(self):
        subscription = self.sut.subscribe(Mock())
        assert_that(subscription.active, is_(True))
        subscription.cancel()
        assert_that(subscription.active, is_(False))
        self.sut.publish(telemetry('1_660000001A590029_1|32'))
        subscription.handler.assert_not_called()


class DeviceSubscriberTest(unittest.TestCase):

    def setUp(self):
        self.owner = Mock()
        self.sut = DeviceSubscriber('660000001A590029', 'DS2408', log=Mock())
        self.sut.owner = self.owner
        self.sut.on_reading = Mock()

    def test_matching_type_is_passed_on(self):
        envelope = ReadingEnvelope('DS2408', '660000001A590029', '1', 1, '32')
        self.sut(envelope)
        self.sut.on_reading.assert_called_once_with(envelope)
        self.owner.assign.assert_not_called()
        assert_that(self.sut.local_id, is_('1'))

    def test_other_device_is_ignored(self):
        self.sut(ReadingEnvelope('DS2408', '06000019828A9B29', '2', 1, '32'))
        self.sut.on_reading.assert_not_called()

    def test_type_mismatch_requests_assignment_without_ds_prefix(self):
        envelope = ReadingEnvelope('11220', '660000001A590029', '1', 1, '32')
        self.sut(envelope)
        self.owner.assign.assert_called_once_with('660000001A590029', '2408')
        self.sut.on_reading.assert_called_once_with(envelope)

    def test_built_in_output_never_reassigned(self):
        sut = DeviceSubscriber('SYS3', 'SYS3', log=Mock())
        sut.owner = self.owner
        sut(ReadingEnvelope('SYS2', 'SYS3', '0', 0, '500'))
        self.owner.assign.assert_not_called()


class DeviceRegistryTest(unittest.TestCase):

    def test_lookup_by_owner_and_hardware_id(self):
        sut = DeviceRegistry()
        first, second = object(), object()
        device = sut.register(first, DeviceSubscriber('AAAA', 'DS1820'))
        other = sut.register(second, DeviceSubscriber('AAAA', 'DS1820'))
        assert_that(device.owner, is_(first))
        assert_that(sut.lookup(first, 'AAAA'), is_(device))
        assert_that(sut.lookup(second, 'AAAA'), is_(other))
        assert_that(sut.devices(first), contains_exactly(device))
        assert_that(len(sut), is_(2))

    def test_unregister(self):
        sut = DeviceRegistry()
        owner = object()
        device = sut.register(owner, DeviceSubscriber('AAAA', 'DS1820'))
        assert_that(sut.unregister(owner, 'AAAA'), is_(device))
        assert_that(device.owner, is_(none()))
        assert_that(sut.lookup(owner, 'AAAA'), is_(none()))
        assert_that(sut.unregister(owner, 'AAAA'), is_(none()))
