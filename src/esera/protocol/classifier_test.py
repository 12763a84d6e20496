import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, none, empty, contains_string

from esera.protocol.classifier import LineClassifier, LineKind, ListRecord, TelemetrySample, \
    parse_list_records, parse_telemetry, parse_setting, parse_status


class LineClassifierTest(unittest.TestCase):

    def setUp(self):
        self.logger = Mock()
        self.sut = LineClassifier(log=self.logger)

    def assert_kind(self, line, kind, initialized=True):
        classified = self.sut.classify(line, initialized)
        assert_that(classified.kind, is_(kind))
        assert_that(classified.line, is_(line))
        return classified

    def test_event_markers(self):
        for line in ('1_EVT|1', '1_CSE|0', '1_CSI|1', '1_INF|18:13:59', '1_KAL'):
            self.assert_kind(line, LineKind.EVENT)

    def test_keep_alive_settings_are_responses(self):
        self.assert_kind('1_KALSEND|1', LineKind.COMMAND_RESPONSE)
        self.assert_kind('1_KALSENDTIME|180', LineKind.COMMAND_RESPONSE)

    def test_list_line(self):
        classified = self.assert_kind('1_LST0|13:47:48;LST|1_OWD1|660000001A590029|DS2408;', LineKind.LIST_RECORD)
        assert_that(classified.records, is_([ListRecord('1', '660000001A590029', 'DS2408')]))

    def test_list_header_alone(self):
        classified = self.assert_kind('1_LST0|13:47:48', LineKind.LIST_RECORD)
        assert_that(classified.records, is_(empty()))

    def test_list_row_alone(self):
        classified = self.assert_kind('LST|1_OWD2|06000019828A9B29|DS2408', LineKind.LIST_RECORD)
        assert_that(classified.records, is_([ListRecord('2', '06000019828A9B29', 'DS2408')]))

    def test_telemetry_with_sub_index(self):
        classified = self.assert_kind('1_660000001A590029_1|32', LineKind.TELEMETRY)
        assert_that(classified.records, is_([TelemetrySample('660000001A590029', 1, '32')]))

    def test_telemetry_without_sub_index(self):
        classified = self.assert_kind('1_ABCDEF1234567890|100', LineKind.TELEMETRY)
        assert_that(classified.records, is_([TelemetrySample('ABCDEF1234567890', 0, '100')]))

    def test_telemetry_before_initialization_dropped(self):
        assert_that(self.sut.classify('1_660000001A590029_1|32', initialized=False), is_(none()))
        assert_that(self.logger.debug.call_args[0][0], contains_string("not initialized"))

    def test_controller_addressed_reading_dropped(self):
        assert_that(self.sut.classify('1_OWD1_1|32'), is_(none()))
        assert_that(self.sut.classify('1_OWD1_1|32', initialized=False), is_(none()))

    def test_command_responses(self):
        for line in ('1_RDY', '1_ERR|3', '1_RUN|1', '1_DATATIME|10', '1_OWD_1|0', '1_ART|1|11216',
                     '1_SEARCHMODE|2', '1_1:17:211_660000001A590029_1|32'):
            self.assert_kind(line, LineKind.COMMAND_RESPONSE)

    def test_command_responses_before_initialization(self):
        self.assert_kind('1_RDY', LineKind.COMMAND_RESPONSE, initialized=False)


class ParseListRecordsTest(unittest.TestCase):

    def test_two_devices(self):
        records = parse_list_records(
            '1_LST0|13:47:48;LST|1_OWD1|660000001A590029|DS2408;LST|1_OWD2|06000019828A9B29|DS2408;')
        assert_that(records, is_([ListRecord('1', '660000001A590029', 'DS2408'),
                                  ListRecord('2', '06000019828A9B29', 'DS2408')]))

    def test_malformed_entries_skipped(self):
        log = Mock()
        records = parse_list_records('LST|1_OWD1|660000001A590029;XYZ|1;LST|OWD|06000019828A9B29|DS1820', log)
        assert_that(records, is_(empty()))
        assert_that(log.error.call_count, is_(3))


class ParseTelemetryTest(unittest.TestCase):

    def test_multiple_readings(self):
        samples = parse_telemetry('1_660000001A590029_1|32;1_660000001A590029_2|00100000;')
        assert_that(samples, is_([TelemetrySample('660000001A590029', 1, '32'),
                                  TelemetrySample('660000001A590029', 2, '00100000')]))

    def test_malformed_reading_skipped(self):
        log = Mock()
        samples = parse_telemetry('1_660000001A590029_1|32|7;1_660000001A590029_2|1', log)
        assert_that(samples, is_([TelemetrySample('660000001A590029', 2, '1')]))
        log.warning.assert_called_once()


class ParseResponseTest(unittest.TestCase):

    def test_setting(self):
        assert_that(parse_setting('1_KALSENDTIME|180;'), is_(('KALSENDTIME', '180')))

    def test_setting_wrong_field_count(self):
        assert_that(parse_setting('1_ART|1|11216'), is_(none()))

    def test_status(self):
        assert_that(parse_status('1_OWD_12|3'), is_(('12', '3')))

    def test_status_not_a_status(self):
        assert_that(parse_status('1_RUN|1'), is_(none()))
