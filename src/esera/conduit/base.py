from abc import abstractmethod
from io import IOBase


class Conduit:
    """
    A two-way byte stream to the controller: an input stream the session loop reads from, an output
    stream commands are written to, and a target the loop can wait on with select().
    """

    @property
    @abstractmethod
    def target(self):
        """ the object passed to select() to wait for input """
        raise NotImplementedError

    @property
    @abstractmethod
    def input(self) -> IOBase:
        """ the stream the controller's lines are read from """
        raise NotImplementedError

    @property
    @abstractmethod
    def output(self) -> IOBase:
        """ the stream commands are written to """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """ closes both streams and the underlying connection. """
        raise NotImplementedError
