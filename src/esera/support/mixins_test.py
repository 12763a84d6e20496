import unittest

from hamcrest import assert_that, is_, equal_to, is_not, calling, raises

from esera.support.mixins import CommonEqualityMixin, StringerMixin


class Value(CommonEqualityMixin, StringerMixin):
    def __init__(self, a, b=None):
        self.a = a
        self.b = b


class Other(CommonEqualityMixin):
    def __init__(self, a, b=None):
        self.a = a
        self.b = b


class CommonEqualityMixinTest(unittest.TestCase):

    def test_equal_when_attributes_equal(self):
        assert_that(Value(1, 'x'), is_(equal_to(Value(1, 'x'))))

    def test_not_equal_when_attributes_differ(self):
        assert_that(Value(1, 'x'), is_not(equal_to(Value(1, 'y'))))

    def test_not_equal_to_different_class(self):
        assert_that(Value(1) != Other(1), is_(True))

    def test_not_equal_to_plain_value(self):
        assert_that(Value(1) == 1, is_(False))


class StringerMixinTest(unittest.TestCase):

    def test_str_lists_sorted_attributes(self):
        assert_that(str(Value(1, None)), is_("Value:{'a': '1', 'b': None}"))

    def test_private_attributes_ignored(self):
        value = Value(1, 'x')
        value._cache = 'anything'
        assert_that(str(value), is_("Value:{'a': '1', 'b': 'x'}"))


class PrivateAttributeEqualityTest(unittest.TestCase):

    def test_private_attributes_not_compared(self):
        first, second = Value(1), Value(1)
        first._seen = 3
        assert_that(first, is_(equal_to(second)))

    def test_self_referencing_values_raise(self):
        first, second = Value(1), Value(1)
        first.b, second.b = first, second
        assert_that(calling(first.__eq__).with_args(second), raises(ValueError))
