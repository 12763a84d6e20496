import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, empty, contains_string

from esera.protocol.framing import LineFramer


class LineFramerTest(unittest.TestCase):

    def setUp(self):
        self.logger = Mock()
        self.sut = LineFramer(log=self.logger)

    def test_single_line(self):
        assert_that(list(self.sut.feed(b"1_RUN|1\n")), is_(["1_RUN|1"]))

    def test_carriage_returns_removed(self):
        assert_that(list(self.sut.feed(b"1_RUN|1\r\n1_KAL\r\n")), is_(["1_RUN|1", "1_KAL"]))

    def test_partial_line_kept_across_feeds(self):
        assert_that(list(self.sut.feed(b"1_66000000")), is_(empty()))
        assert_that(self.sut.pending, is_("1_66000000"))
        assert_that(list(self.sut.feed(b"1A590029_1|32\r\n1_E")), is_(["1_660000001A590029_1|32"]))
        assert_that(self.sut.pending, is_("1_E"))

    def test_empty_lines_dropped_with_diagnostic(self):
        assert_that(list(self.sut.feed(b"\r\n\n1_RDY\n")), is_(["1_RDY"]))
        assert_that(self.logger.debug.call_args_list[0][0][0], contains_string("empty line"))

    def test_unconsumed_lines_remain_available(self):
        lines = self.sut.feed(b"a\nb\n")
        assert_that(next(lines), is_("a"))
        assert_that(list(self.sut.feed(b"c\n")), is_(["b", "c"]))

    def test_reset_drops_partial_line(self):
        list(self.sut.feed(b"1_LST0|13:4"))
        self.sut.reset()
        assert_that(self.sut.pending, is_(""))
        assert_that(list(self.sut.feed(b"1_RDY\n")), is_(["1_RDY"]))

    def test_undecodable_bytes_replaced(self):
        assert_that(list(self.sut.feed(b"1_INF|\xff\n")), is_(["1_INF|�"]))
