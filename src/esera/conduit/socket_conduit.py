import socket

from esera.conduit import base


class SocketConduit(base.Conduit):
    """
    A conduit that provides communication via a socket.

    The input stream is unbuffered so that a read after select() returns whatever the
    socket has available without blocking for more.

    :param sock The open, connected socket
    """
    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.read = sock.makefile('rb', buffering=0)
        self.write = sock.makefile('wb')

    @property
    def open(self) -> bool:
        return self.sock.fileno() >= 0

    @property
    def target(self):
        return self.sock

    @property
    def output(self):
        return self.write

    @property
    def input(self):
        return self.read

    def close(self):
        self.read.close()
        self.write.close()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # the peer may have closed the socket already
        finally:
            self.sock.close()
