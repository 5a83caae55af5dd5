from types import SimpleNamespace

from django.test import SimpleTestCase

from apps.stocks.aggregation import usage_stats


def movements(*pairs):
    """Newest-first movement stand-ins from (type, quantity) pairs."""
    return [SimpleNamespace(movement_type=t, quantity=q) for t, q in pairs]


class UsageStatsTest(SimpleTestCase):

    def test_empty_history(self):
        stats = usage_stats([])
        self.assertEqual(stats['total_in'], 0)
        self.assertEqual(stats['total_out'], 0)
        self.assertEqual(stats['total_adjustments'], 0)
        self.assertEqual(stats['average_monthly_usage'], 0)
        self.assertEqual(stats['trend'], 'stable')

    def test_totals_and_average(self):
        history = movements(
            *([('out', 2)] * 10),
            *([('in', 10)] * 4),
            ('adjustment', 30),
        )
        stats = usage_stats(history)
        self.assertEqual(stats['total_in'], 40)
        self.assertEqual(stats['total_out'], 20)
        self.assertEqual(stats['total_adjustments'], 1)
        # 15 records count as two "months"
        self.assertEqual(stats['average_monthly_usage'], 10.0)

    def test_adjustment_quantity_not_counted_as_usage(self):
        stats = usage_stats(movements(('adjustment', 500), ('out', 5)))
        self.assertEqual(stats['total_out'], 5)
        self.assertEqual(stats['total_in'], 0)

    def test_increasing_trend(self):
        history = movements(*([('out', 1)] * 10), *([('in', 1)] * 10))
        self.assertEqual(usage_stats(history)['trend'], 'increasing')

    def test_decreasing_trend(self):
        history = movements(*([('in', 1)] * 10), *([('out', 1)] * 10))
        self.assertEqual(usage_stats(history)['trend'], 'decreasing')

    def test_stable_trend(self):
        window = [('out', 1)] * 5 + [('in', 1)] * 5
        history = movements(*window, *window)
        self.assertEqual(usage_stats(history)['trend'], 'stable')

    def test_average_rounded_to_two_places(self):
        history = movements(*([('out', 1)] * 21))
        # 21 / ceil(21 / 10)
        self.assertEqual(usage_stats(history)['average_monthly_usage'], 7.0)
        history = movements(*([('out', 10)] * 30), ('out', 1))
        # 301 / 4
        self.assertEqual(usage_stats(history)['average_monthly_usage'], 75.25)
