"""
The device directory maps the stable hardware id of each 1-Wire device to the controller-local id the
controller currently uses for it, and caches its device type and status.

Controller-local ids are volatile: they may change when the controller restarts or rebuilds its
device list, so the directory is never persisted and is rebuilt from the controller's list response.
"""
import logging

from esera.protocol.tasks import HandlerKind, TaskQueue
from esera.support.mixins import CommonEqualityMixin, StringerMixin

logger = logging.getLogger(__name__)

LIST_COMMAND = 'get,owb,list0'
# marks the end of a refresh. The controller answers it whatever state it is in.
REFRESH_SENTINEL = ('get,sys,run', '1_RUN')

# the settings read back from the controller on a full refresh, with the key each is answered with
SETTINGS_QUERIES = (
    ('get,sys,fw', '1_FW'),
    ('get,sys,hw', '1_HW'),
    ('get,sys,serial', '1_SERIAL'),
    ('get,sys,id', '1_ID'),
    ('get,sys,dom', '1_DOM'),
    ('get,sys,run', '1_RUN'),
    ('get,sys,contno', '1_CONTNO'),
    ('get,sys,kalrec', '1_KALREC'),
    ('get,sys,kalrectime', '1_KALRECTIME'),
    ('get,sys,dataprint', '1_DATASEND'),
    ('get,sys,datatime', '1_DATATIME'),
    ('get,sys,kalsend', '1_KALSEND'),
    ('get,sys,kalsendtime', '1_KALSENDTIME'),
    ('get,owb,owdid', '1_OWDID'),
    ('get,owb,owdidformat', '1_OWDIDFORMAT'),
    ('get,owb,search', '1_SEARCHMODE'),
    ('get,owb,searchtime', '1_SEARCHTIME'),
    ('get,owb,polltime', '1_POLLTIME'),
    ('get,owd,ds2408inv', '1_DS2408INV'),
)


class DirectoryEntry(CommonEqualityMixin, StringerMixin):
    """
    What is known about one device.

    :param hardware_id: the id burned into the device
    :param local_id: the controller's current index for the device
    :param device_type: the type last reported by the controller, None while pending
    :param status: the last status code read from the controller, None if not yet read
    :param error_count: the device's communication error counter. The controller doesn't
        answer this query, so it remains None.
    """

    def __init__(self, hardware_id, local_id=None, device_type=None, status=None, error_count=None):
        self.hardware_id = hardware_id
        self.local_id = local_id
        self.device_type = device_type
        self.status = status
        self.error_count = error_count

    @property
    def pending(self):
        return self.device_type is None


class DeviceDirectory:
    """
    The hardware id to controller-local id directory of one session.

    Refreshes are carried out through the session's task queue. Only one refresh runs at a time;
    `state.refresh_in_progress` is set when a refresh is queued and cleared by the session when the
    refresh's final task resolves with HandlerKind.REFRESH_COMPLETE.

    :param tasks: the session's TaskQueue
    :param state: the session state holding the refresh_in_progress flag
    :param list_wait: seconds allowed for all rows of a list response to arrive
    """

    def __init__(self, tasks: TaskQueue, state, list_wait=2.0, log=logger):
        self.tasks = tasks
        self.state = state
        self.list_wait = list_wait
        self.logger = log
        self._entries = {}

    def __len__(self):
        return len(self._entries)

    def __contains__(self, hardware_id):
        return hardware_id in self._entries

    @property
    def entries(self):
        """ the entries sorted by hardware id. """
        return [self._entries[key] for key in sorted(self._entries)]

    def entry(self, hardware_id) -> DirectoryEntry:
        return self._entries.get(hardware_id)

    def clear(self):
        self._entries.clear()

    def apply_list(self, records):
        """
        Adds the rows of a list response. A row replaces any entry that had the same controller-local id
        under a different hardware id.
        :param records: iterable of esera.protocol.classifier.ListRecord
        """
        for record in records:
            self.logger.info("new list entry: controller id %s hardware id %s device type %s" %
                             (record.local_id, record.hardware_id, record.device_type))
            for stale in [e for e in self._entries.values()
                          if e.local_id == record.local_id and e.hardware_id != record.hardware_id]:
                del self._entries[stale.hardware_id]
            entry = self._entries.get(record.hardware_id)
            if entry is None:
                entry = self._entries[record.hardware_id] = DirectoryEntry(record.hardware_id)
            entry.local_id = record.local_id
            entry.device_type = record.device_type

    def local_id(self, hardware_id):
        entry = self._entries.get(hardware_id)
        return entry.local_id if entry else None

    def hardware_id(self, local_id):
        for entry in self._entries.values():
            if entry.local_id == local_id:
                return entry.hardware_id
        return None

    def device_type(self, hardware_id):
        entry = self._entries.get(hardware_id)
        return entry.device_type if entry else None

    def set_status(self, local_id, status):
        """ records the status of the device with the given controller-local id.
        :return: the hardware id of the device, or None if the controller id is unknown """
        hardware_id = self.hardware_id(local_id)
        if hardware_id is None:
            self.logger.error("could not map controller id to hardware id: %s" % local_id)
            return None
        self._entries[hardware_id].status = status
        return hardware_id

    def clear_status(self):
        for entry in self._entries.values():
            entry.status = None

    def invalidate(self, hardware_id):
        """ marks the device type of one entry as pending. The other entries are unchanged. """
        entry = self._entries.get(hardware_id)
        if entry is not None:
            entry.device_type = None

    def lookup_local_id(self, hardware_id):
        """
        Fetches the controller-local id for a hardware id. If the device is not known, an incremental
        refresh for it is requested.
        :return: the controller-local id, or None
        """
        local_id = self.local_id(hardware_id)
        if local_id is None:
            self.logger.warning("no controller id known for %s, refreshing device list" % hardware_id)
            self.refresh(full=False, hardware_id=hardware_id)
        return local_id

    def refresh(self, full=True, hardware_id=None):
        """
        Requests the directory is read again from the controller.

        A full refresh discards the directory, reads the device list and the controller settings.
        An incremental refresh marks the device type of `hardware_id` pending and reads the device list
        only. Either request is ignored while another refresh is in progress, although the entry for
        `hardware_id` is still invalidated.
        :return: True if the refresh was queued
        """
        if not full and hardware_id is not None:
            self.invalidate(hardware_id)
        if self.state.refresh_in_progress:
            self.logger.debug("refresh already in progress, request ignored")
            return False

        if full:
            self.logger.info("refreshing device list and controller settings")
            self.clear()
        else:
            self.logger.info("refreshing device list for %s" % hardware_id)
        self.state.refresh_in_progress = True
        self.tasks.enqueue_posted_write(LIST_COMMAND, self.list_wait)
        if full:
            for command, expected in SETTINGS_QUERIES:
                self.tasks.enqueue_command(command, expected, HandlerKind.SETTINGS_CAPTURE)
        command, expected = REFRESH_SENTINEL
        self.tasks.enqueue_command(command, expected, HandlerKind.REFRESH_COMPLETE)
        return True
