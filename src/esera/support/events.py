"""
Observer lists used to publish readings and connector state changes.
"""


class EventSource(object):
    """ An ordered list of handlers. Handlers are called synchronously, in the order they were added. """

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def __len__(self):
        return len(self._handlers)

    def add(self, handler):
        self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        # handlers may remove themselves while being notified
        for handler in self.handlers():
            handler(*args, **kwargs)
