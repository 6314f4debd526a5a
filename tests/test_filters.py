#!/usr/bin/env python3
"""
Unit tests for source filters and person compound keys.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from people_sync.filters import Filter, FilterError, Filters
from people_sync.person import Person, compound_key, expand_repeated


class TestFilters(unittest.TestCase):
    """Test cases for Filters."""

    def setUp(self):
        self.people = [
            Person('a', {'department': 'Engineering', 'status': 'active'}),
            Person('b', {'department': 'Sales', 'status': 'active'}),
            Person('c', {'department': 'Engineering', 'status': 'terminated'}),
        ]

    def test_all_filters_must_match(self):
        filters = Filters.from_config([
            {'attribute': 'department', 'expression': '^Eng'},
            {'attribute': 'status', 'expression': '^active$'},
        ])

        result = filters.apply(self.people)

        self.assertEqual([p.compare_value for p in result], ['a'])

    def test_exclude_filter(self):
        filters = Filters.from_config([{'attribute': 'status', 'expression': 'terminated', 'exclude': True}])

        result = filters.apply(self.people)

        self.assertEqual([p.compare_value for p in result], ['a', 'b'])

    def test_missing_attribute_raises(self):
        filters = Filters.from_config([{'attribute': 'location', 'expression': '.*'}])

        with self.assertRaises(FilterError):
            filters.apply(self.people)

    def test_no_filters_keeps_everyone(self):
        filters = Filters.from_config(None)

        self.assertEqual(len(filters), 0)
        self.assertEqual(filters.apply(self.people), self.people)

    def test_invalid_expression(self):
        filters = Filters([Filter('department', '(')])

        with self.assertRaises(FilterError):
            filters.validate()

    def test_attributes(self):
        filters = Filters.from_config([{'attribute': 'department', 'expression': 'x'}])

        self.assertEqual(filters.attributes(), ['department'])
        self.assertEqual([f.attribute for f in filters], ['department'])


class TestPerson(unittest.TestCase):

    def test_none_values_dropped(self):
        person = Person('a', {'name': 'Ann', 'title': None})

        self.assertEqual(person.attributes, {'name': 'Ann'})
        self.assertEqual(person.get('title'), '')

    def test_copy_is_independent(self):
        person = Person('a', {'name': 'Ann'}, id='1')
        duplicate = person.copy()
        duplicate.attributes['name'] = 'Bob'

        self.assertEqual(person.get('name'), 'Ann')
        self.assertEqual(duplicate.id, '1')

    def test_compound_keys(self):
        self.assertEqual(compound_key('phone'), 'phone')
        self.assertEqual(compound_key('phone', 'work'), 'phone|work')
        self.assertEqual(compound_key('phone', 'work', 1), 'phone|work~1')

    def test_expand_repeated(self):
        self.assertEqual(expand_repeated('phone', ['1', None, '2', '3'], 'work'),
                         {'phone|work': '1', 'phone|work~1': '2', 'phone|work~2': '3'})
        self.assertEqual(expand_repeated('mail', ['a@example.com']), {'mail': 'a@example.com'})


if __name__ == '__main__':
    unittest.main()
