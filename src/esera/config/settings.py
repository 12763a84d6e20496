"""
The settings objects the session and its loop are configured from.
"""
from esera.config.config import apply_conf_path, load_config
from esera.support.mixins import CommonEqualityMixin, StringerMixin


class ConnectionConfig(CommonEqualityMixin, StringerMixin):

    def __init__(self):
        self.host = None
        self.port = 5000
        self.connect_timeout = 5.0
        self.poll_interval = 0.5


class SessionConfig(CommonEqualityMixin, StringerMixin):
    """
    Timing for the task queue and the values programmed into the controller at start-up.
    A timeout of 0 waits forever.
    """

    def __init__(self):
        self.response_timeout = 10.0
        self.sync_timeout = 30.0
        self.discovery_wait = 4.0
        self.settle_wait = 2.0
        self.list_wait = 2.0
        self.output_wait = 0.1
        self.datatime = 10
        self.kalsendtime = 180
        self.searchtime = 30
        self.polltime = 5
        self.ds2408inv = 1


def load_settings(name='esera', directory=None):
    """
    Loads the configuration and applies it to fresh settings objects.
    :return: a tuple (ConnectionConfig, SessionConfig)
    """
    conf = load_config(name, directory)
    connection = apply_conf_path(conf, 'connection', ConnectionConfig())
    session = SessionConfig()
    apply_conf_path(conf, 'session', session)
    apply_conf_path(conf, 'controller', session)
    return connection, session
