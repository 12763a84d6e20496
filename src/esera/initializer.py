"""
The start-up script run on every connection. It resets the controller and programs the operating
mode the session relies on: readings addressed by hardware id, keep-alive messages and cyclic search
for new devices.
"""
import logging

from esera.protocol.tasks import HandlerKind

logger = logging.getLogger(__name__)


class SessionInitializer:
    """
    Queues the start-up script. Tasks in the script that fail are logged by their handlers and the
    script carries on; the session becomes initialized when the last task resolves.

    :param tasks: the session's TaskQueue
    :param directory: the session's DeviceDirectory, fully refreshed as part of the script
    :param config: SessionConfig with the waits and the values to program
    """

    def __init__(self, tasks, directory, config, log=logger):
        self.tasks = tasks
        self.directory = directory
        self.config = config
        self.logger = log

    def mode_settings(self):
        """ the commands that set the operating mode, with the response key expected for each. """
        c = self.config
        return [
            ('set,sys,contno,1', '1_CONTNO'),
            ('set,sys,run,1', '1_RUN'),
            ('set,owb,owdid,1', '1_OWDID'),
            ('set,sys,dataprint,1', '1_DATAPRINT'),
            ('set,sys,datatime,%d' % c.datatime, '1_DATATIME'),
            ('set,sys,echo,1', '1_ECHO'),
            ('set,sys,kalsend,1', '1_KALSEND'),
            ('set,sys,kalsendtime,%d' % c.kalsendtime, '1_KALSENDTIME'),
            ('set,sys,kalrec,0', '1_KALREC'),
            ('set,owb,owdidformat,1', '1_OWDIDFORMAT'),
            ('set,owb,search,2', '1_SEARCH'),
            ('set,owb,searchtime,%d' % c.searchtime, '1_SEARCHTIME'),
            ('set,owb,polltime,%d' % c.polltime, '1_POLLTIME'),
            ('set,owd,ds2408inv,%d' % c.ds2408inv, '1_DS2408INV'),
        ]

    def run(self):
        """ queues the script. The caller is expected to have cleared the queue. """
        self.logger.info("initializing controller")
        tasks = self.tasks
        # lines received before the controller is ready are noise
        tasks.enqueue_sync('set,sys,rst,1', '1_RDY', HandlerKind.CONTROLLER_READY)
        # the first command after a reset is answered with an error before the real response
        tasks.enqueue_sync('set,sys,dataprint,1', '1_DATAPRINT', HandlerKind.SETTINGS_CAPTURE)
        for command, expected in self.mode_settings():
            tasks.enqueue_command(command, expected, HandlerKind.SETTINGS_CAPTURE)
        # give the controller time to detect the devices
        tasks.enqueue_wait(self.config.discovery_wait)
        self.directory.refresh(full=True)
        tasks.enqueue_wait(self.config.settle_wait)
        tasks.enqueue_command('get,sys,run', '1_RUN', HandlerKind.INIT_COMPLETE)
