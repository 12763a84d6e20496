"""
Splits the byte stream from the controller into protocol lines.
"""
import logging

logger = logging.getLogger(__name__)


class LineFramer:
    """
    Buffers data received from the controller and yields complete, newline-terminated lines.

    Carriage returns are removed wherever they occur, so CRLF and LF terminated lines are
    handled alike. Empty lines are logged and dropped. A partial trailing line is kept until the
    rest of it arrives.
    """

    def __init__(self, encoding='ascii', log=logger):
        self.encoding = encoding
        self.logger = log
        self._buffer = ''

    @property
    def pending(self):
        """ the partial line received so far. """
        return self._buffer

    def feed(self, data: bytes):
        """
        Adds received data to the buffer.
        :return: a generator over the complete lines now available. Lines not consumed
            remain available to the next call.
        """
        self._buffer += data.decode(self.encoding, errors='replace').replace('\r', '')
        return self._lines()

    def _lines(self):
        while '\n' in self._buffer:
            line, self._buffer = self._buffer.split('\n', 1)
            line = line.rstrip()
            if not line:
                self.logger.debug("COMM - empty line dropped")
                continue
            self.logger.debug("COMM read: %s" % line)
            yield line

    def reset(self):
        """ drops any partial line, such as when the connection is re-established. """
        self._buffer = ''
