"""
Sorts the lines received from the controller into asynchronous events, device list records,
telemetry and responses to the command currently outstanding, and parses the record formats.

Wire formats (fields are separated by '|', records within a line by ';'):

- settings response     ``1_<SETTING>|<value>``
- device list           ``1_LST0|<time>;LST|1_OWD<n>|<hardware id>|<device type>;...``
- telemetry             ``1_<hardware id>_<sub index>|<value>;...`` or ``1_<hardware id>|<value>``
- device status         ``1_OWD_<n>|<status>``
- error                 ``1_ERR|<code>``
"""
import logging
import re
from collections import namedtuple
from enum import Enum

from esera.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

# keep-alive, event, info and connect-state markers sent by the controller on its own account
EVENT_TAG = re.compile(r'^1_(?:EVT|CSE|CSI|INF)|^1_KAL$')
LIST_TAGS = ('1_LST0', 'LST')
# readings addressed by controller-local id rather than hardware id
LOCAL_ADDRESSED_READING = re.compile(r'^1_OWD(\d+)_(\d+)')
TELEMETRY_ADDRESS = re.compile(r'^1_([0-9A-F]+)(?:_(\d+))?$')
LIST_LOCAL_ID = re.compile(r'^1_OWD(\d+)$')
SETTING_KEY = re.compile(r'^1_([A-Z0-9]+)$')
STATUS_KEY = re.compile(r'^1_OWD_(\d+)$')

ListRecord = namedtuple('ListRecord', 'local_id hardware_id device_type')
TelemetrySample = namedtuple('TelemetrySample', 'hardware_id sub_index value')


class LineKind(Enum):
    EVENT = 'event'
    LIST_RECORD = 'list record'
    TELEMETRY = 'telemetry'
    COMMAND_RESPONSE = 'command response'


class ClassifiedLine(CommonEqualityMixin, StringerMixin):
    """ A line tagged with its kind. List records and telemetry lines carry their parsed records. """

    def __init__(self, kind: LineKind, line, records=()):
        self.kind = kind
        self.line = line
        self.records = list(records)


class LineClassifier:
    """
    Tags each line as an event, a list record, telemetry or a command response, in that order
    of priority. Telemetry received before the session is initialized cannot be attributed to a
    known device, and is dropped.
    """

    def __init__(self, log=logger):
        self.logger = log

    def classify(self, line, initialized=True):
        """
        :param line: one framed line
        :param initialized: whether the session has completed its start-up sequence
        :return: the ClassifiedLine, or None when the line is dropped.
        """
        head = line.split('|', 1)[0]
        if EVENT_TAG.match(head):
            self.logger.debug("COMM - %s received" % head)
            return ClassifiedLine(LineKind.EVENT, line)
        if head in LIST_TAGS:
            return ClassifiedLine(LineKind.LIST_RECORD, line, parse_list_records(line, self.logger))
        if LOCAL_ADDRESSED_READING.match(head):
            if initialized:
                self.logger.info("reading addressed by controller id instead of hardware id, ignored: %s" % line)
            return None
        if TELEMETRY_ADDRESS.match(head):
            if not initialized:
                self.logger.debug("reading ignored because controller is not initialized: %s" % line)
                return None
            return ClassifiedLine(LineKind.TELEMETRY, line, parse_telemetry(line, self.logger))
        return ClassifiedLine(LineKind.COMMAND_RESPONSE, line)


def _elements(line):
    """ the non-empty ';' separated records of a line, each split into its '|' separated fields. """
    return [element.split('|') for element in line.split(';') if element]


def parse_list_records(line, log=logger):
    """
    Parses the device records in a list response.

    >>> parse_list_records('1_LST0|13:47:48;LST|1_OWD1|660000001A590029|DS2408;')
    [ListRecord(local_id='1', hardware_id='660000001A590029', device_type='DS2408')]
    """
    records = []
    for fields in _elements(line):
        tag = fields[0]
        if tag == '1_LST0':
            continue
        if tag != 'LST':
            log.error("unexpected content in LST response: %s" % '|'.join(fields))
            continue
        if len(fields) != 4:
            log.error("unexpected number of fields for list entry: %s" % '|'.join(fields))
            continue
        match = LIST_LOCAL_ID.match(fields[1])
        if not match:
            log.error("list entry without controller id: %s" % '|'.join(fields))
            continue
        records.append(ListRecord(match.group(1), fields[2], fields[3]))
    return records


def parse_telemetry(line, log=logger):
    """
    Parses the readings in a telemetry line. A reading without a sub-index has sub-index 0.

    >>> parse_telemetry('1_660000001A590029_1|32;')
    [TelemetrySample(hardware_id='660000001A590029', sub_index=1, value='32')]
    >>> [s.sub_index for s in parse_telemetry('1_06000019828A9B29|0')]
    [0]
    """
    samples = []
    for fields in _elements(line):
        if len(fields) != 2:
            log.warning("unexpected readings format: %s" % '|'.join(fields))
            continue
        match = TELEMETRY_ADDRESS.match(fields[0])
        if not match:
            log.warning("unexpected readings format: %s" % fields[0])
            continue
        sub_index = int(match.group(2)) if match.group(2) is not None else 0
        samples.append(TelemetrySample(match.group(1), sub_index, fields[1]))
    return samples


def _key_value(line, key_pattern):
    fields = line.replace(';', '').split('|')
    if len(fields) != 2:
        return None
    match = key_pattern.match(fields[0])
    return (match.group(1), fields[1]) if match else None


def parse_setting(line):
    """
    Parses a settings response.

    >>> parse_setting('1_DATATIME|10')
    ('DATATIME', '10')
    >>> parse_setting('1_RDY') is None
    True
    """
    return _key_value(line, SETTING_KEY)


def parse_status(line):
    """
    Parses a device status response into the controller-local id and the status code.

    >>> parse_status('1_OWD_2|0')
    ('2', '0')
    """
    return _key_value(line, STATUS_KEY)
