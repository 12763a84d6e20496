import unittest
from unittest.mock import Mock, call

from hamcrest import assert_that, is_, empty

from esera.support.events import EventSource


class EventsTest(unittest.TestCase):

    def test_handlers_empty(self):
        sut = EventSource()
        assert_that(sut.handlers(), is_(empty()))
        assert_that(len(sut), is_(0))

    def test_no_listeners(self):
        sut = EventSource()
        sut.fire(1)

    def test_manage_handlers(self):
        sut = EventSource()
        m1 = Mock()
        sut.add(m1)
        assert_that(sut.handlers(), is_((m1,)))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(()))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(()))

        sut += m1
        assert_that(sut.handlers(), is_((m1,)))

        sut -= m1
        assert_that(sut.handlers(), is_(()))

    def test_listeners_called_in_registration_order(self):
        sut = EventSource()
        order = Mock()
        sut += order.first
        sut += order.second
        sut.fire(1, v="hey")
        assert_that(order.mock_calls, is_([call.first(1, v="hey"), call.second(1, v="hey")]))

    def test_handler_can_remove_itself_while_firing(self):
        sut = EventSource()
        second = Mock()

        def once(*args):
            sut.remove(once)

        sut += once
        sut += second
        sut.fire(1)
        second.assert_called_once_with(1)
        assert_that(sut.handlers(), is_((second,)))
