"""
Helpers for the plain value objects passed between the session components, such as tasks,
directory entries, the session state and the settings objects.

Only public attributes take part: attributes named with a leading underscore are private
bookkeeping and are neither compared nor printed.
"""
import threading


def quote(val):
    return "'" + str(val) + "'" if val is not None else "None"


def public_items(obj):
    """ the public attributes of an object as (name, value) pairs, sorted by name. """
    return sorted(((key, val) for key, val in vars(obj).items() if not key.startswith('_')),
                  key=lambda item: item[0])


class StringerMixin:

    def __str__(self):
        """
        outputs the class name and the public attributes in name order
        """
        return type(self).__name__ + ':{' + ", ".join("'%s': %s" % (key, quote(val))
                                                      for key, val in public_items(self)) + '}'


class CommonEqualityMixin(object):
    """  equality by class and public attributes. Comparing a structure that refers back to
         itself raises ValueError. """
    local = threading.local()

    def __eq__(self, other):
        if not isinstance(other, self.__class__) or not hasattr(other, '__dict__'):
            return False
        comparing = CommonEqualityMixin.local.__dict__.setdefault('comparing', set())
        pair = (id(self), id(other))
        if pair in comparing:
            raise ValueError("recursive comparison of %s" % type(self).__name__)
        comparing.add(pair)
        try:
            return public_items(self) == public_items(other)
        finally:
            comparing.discard(pair)

    def __ne__(self, other):
        return not self.__eq__(other)
