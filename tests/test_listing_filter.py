from __future__ import annotations

import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.sql.elements import False_

from marketplace.services.listing_filter import (
    DATE_POSTED_WINDOWS,
    ListingFilter,
    build_listing_filter,
    posted_after,
)


NOW = datetime(2026, 10, 19, 12, 0, 0)


class PostedAfterTestCase(unittest.TestCase):
    def test_known_windows(self):
        self.assertEqual(posted_after("24h", now=NOW), NOW - timedelta(days=1))
        self.assertEqual(posted_after("7d", now=NOW), NOW - timedelta(days=7))
        self.assertEqual(posted_after("14d", now=NOW), NOW - timedelta(days=14))
        self.assertEqual(posted_after("30d", now=NOW), NOW - timedelta(days=30))

    def test_window_names_are_trimmed_and_case_folded(self):
        self.assertEqual(posted_after(" 7D ", now=NOW), NOW - timedelta(days=7))

    def test_unknown_or_missing_window_is_ignored(self):
        self.assertIsNone(posted_after("yesterday", now=NOW))
        self.assertIsNone(posted_after(None, now=NOW))
        self.assertIsNone(posted_after("", now=NOW))

    def test_window_table(self):
        self.assertEqual(set(DATE_POSTED_WINDOWS), {"24h", "7d", "14d", "30d"})


class BuildListingFilterTestCase(unittest.TestCase):
    def test_empty_category_set_matches_nothing(self):
        listing_filter = build_listing_filter(set(), location="Lagos")
        self.assertTrue(listing_filter.matches_nothing)
        self.assertIsInstance(listing_filter.to_clause(), False_)

    def test_facets_are_normalised(self):
        listing_filter = build_listing_filter(
            [3, 1, 3],
            location="  Berlin ",
            date_posted="24h",
            min_price="10",
            max_price=99.5,
            now=NOW,
        )
        self.assertEqual(listing_filter.category_ids, frozenset({1, 3}))
        self.assertEqual(listing_filter.location, "Berlin")
        self.assertEqual(listing_filter.posted_after, NOW - timedelta(days=1))
        self.assertEqual(listing_filter.min_price, Decimal("10"))
        self.assertEqual(listing_filter.max_price, Decimal("99.5"))
        self.assertFalse(listing_filter.matches_nothing)

    def test_blank_and_invalid_facets_are_absent(self):
        listing_filter = build_listing_filter([1], location="   ", min_price="cheap", max_price="")
        self.assertIsNone(listing_filter.location)
        self.assertIsNone(listing_filter.min_price)
        self.assertIsNone(listing_filter.max_price)
        self.assertIsNone(listing_filter.posted_after)

    def test_clause_names_every_active_predicate(self):
        listing_filter = build_listing_filter(
            [1, 2],
            location="Berlin",
            date_posted="7d",
            min_price=5,
            max_price=50,
            now=NOW,
        )
        sql = str(listing_filter.to_clause())
        self.assertIn("listings.category_id IN", sql)
        self.assertIn("lower(listings.location)", sql)
        self.assertIn("listings.created_at >=", sql)
        self.assertIn("listings.price >=", sql)
        self.assertIn("listings.price <=", sql)

    def test_filter_is_a_value(self):
        a = ListingFilter(category_ids=frozenset({1}), location="x")
        b = ListingFilter(category_ids=frozenset({1}), location="x")
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))


if __name__ == "__main__":
    unittest.main()
