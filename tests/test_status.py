"""
Stock and expiry status derivation.
"""
from datetime import date, datetime, timedelta, timezone as dt_timezone

from django.test import SimpleTestCase

from apps.stocks.status import (
    ExpiryStatus,
    StockStatus,
    days_since_expiry,
    days_until_expiry,
    expiry_status,
    stock_status,
    suggested_reorder_quantity,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)


class StockStatusTest(SimpleTestCase):

    def test_zero_is_out_of_stock(self):
        self.assertEqual(stock_status(0, 50), StockStatus.OUT_OF_STOCK)
        self.assertEqual(stock_status(0, 0), StockStatus.OUT_OF_STOCK)

    def test_reorder_level_is_low_stock(self):
        self.assertEqual(stock_status(50, 50), StockStatus.LOW_STOCK)
        self.assertEqual(stock_status(1, 50), StockStatus.LOW_STOCK)

    def test_near_reorder_boundary_both_sides(self):
        self.assertEqual(stock_status(51, 50), StockStatus.NEAR_REORDER)
        self.assertEqual(stock_status(55, 50), StockStatus.NEAR_REORDER)
        self.assertEqual(stock_status(56, 50), StockStatus.IN_STOCK)

    def test_near_reorder_factor_is_exact(self):
        # 10 * 1.1 is 11.000000000000002 in binary floating point
        self.assertEqual(stock_status(11, 10), StockStatus.NEAR_REORDER)
        self.assertEqual(stock_status(12, 10), StockStatus.IN_STOCK)

    def test_fractional_threshold_rounded_down(self):
        # 15 * 1.1 = 16.5
        self.assertEqual(stock_status(16, 15), StockStatus.NEAR_REORDER)
        self.assertEqual(stock_status(17, 15), StockStatus.IN_STOCK)

    def test_zero_reorder_level(self):
        self.assertEqual(stock_status(1, 0), StockStatus.IN_STOCK)

    def test_idempotent(self):
        for quantity in (0, 45, 55, 56, 1000):
            self.assertEqual(stock_status(quantity, 50), stock_status(quantity, 50))


class ExpiryStatusTest(SimpleTestCase):

    def test_no_expiry(self):
        self.assertIsNone(days_until_expiry(None, NOW))
        self.assertEqual(expiry_status(None, NOW), ExpiryStatus.NO_EXPIRY)

    def test_ten_days_is_expiring_soon(self):
        expiry = NOW.date() + timedelta(days=10)
        self.assertEqual(days_until_expiry(expiry, NOW), 10)
        self.assertEqual(expiry_status(expiry, NOW), ExpiryStatus.EXPIRING_SOON)

    def test_forty_days_is_valid(self):
        expiry = NOW.date() + timedelta(days=40)
        self.assertEqual(expiry_status(expiry, NOW), ExpiryStatus.VALID)

    def test_thirty_day_boundary(self):
        self.assertEqual(expiry_status(NOW.date() + timedelta(days=30), NOW), ExpiryStatus.EXPIRING_SOON)
        self.assertEqual(expiry_status(NOW.date() + timedelta(days=31), NOW), ExpiryStatus.VALID)

    def test_expiring_today_is_not_expired(self):
        self.assertEqual(days_until_expiry(NOW.date(), NOW), 0)
        self.assertEqual(expiry_status(NOW.date(), NOW), ExpiryStatus.EXPIRING_SOON)

    def test_yesterday_is_expired(self):
        expiry = NOW.date() - timedelta(days=1)
        self.assertEqual(days_until_expiry(expiry, NOW), -1)
        self.assertEqual(expiry_status(expiry, NOW), ExpiryStatus.EXPIRED)

    def test_datetime_expiry(self):
        self.assertEqual(days_until_expiry(NOW + timedelta(days=10), NOW), 10)
        self.assertEqual(days_until_expiry(NOW + timedelta(days=9, hours=1), NOW), 10)

    def test_naive_clock_read_in_project_timezone(self):
        naive_now = NOW.replace(tzinfo=None)
        expiry = NOW + timedelta(days=10)
        self.assertEqual(days_until_expiry(expiry, naive_now), 10)
        self.assertEqual(expiry_status(expiry, naive_now), ExpiryStatus.EXPIRING_SOON)
        self.assertEqual(days_since_expiry(NOW - timedelta(days=3), naive_now), 3)

    def test_naive_expiry_read_in_clock_timezone(self):
        expiry = (NOW + timedelta(days=10)).replace(tzinfo=None)
        self.assertEqual(days_until_expiry(expiry, NOW), 10)
        self.assertEqual(days_since_expiry(expiry - timedelta(days=13), NOW), 3)

    def test_days_since_expiry(self):
        self.assertEqual(days_since_expiry(date(2026, 2, 24), NOW), 6)

    def test_idempotent(self):
        expiry = NOW.date() + timedelta(days=10)
        self.assertEqual(expiry_status(expiry, NOW), expiry_status(expiry, NOW))


class SuggestedReorderQuantityTest(SimpleTestCase):

    def test_double_reorder_level(self):
        self.assertEqual(suggested_reorder_quantity(50), 100)
        self.assertEqual(suggested_reorder_quantity(100, 600), 200)

    def test_minimum_order(self):
        self.assertEqual(suggested_reorder_quantity(10), 50)
        self.assertEqual(suggested_reorder_quantity(0), 50)

    def test_lead_time_usage_dominates(self):
        # ceil(3000 / 30 * 7) + ceil(0.2 * 0)
        self.assertEqual(suggested_reorder_quantity(0, 3000), 700)
        # ceil(900 / 30 * 7) + ceil(0.2 * 30) = 210 + 6
        self.assertEqual(suggested_reorder_quantity(30, 900), 216)

    def test_fractional_average_usage(self):
        self.assertEqual(suggested_reorder_quantity(0, 300.5), 71)
