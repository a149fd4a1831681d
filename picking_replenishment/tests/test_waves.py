"""
Tests for the wave building rules.
"""
import unittest
from datetime import date

from picking_replenishment.core.waves import (
    TaskCandidate,
    abc_priority,
    calculate_qty_to_replenish,
    can_transition,
    format_wave_number,
    is_below_minimum,
    order_tasks
)


def _candidate(product_code, current_qty, min_qty, max_qty, abc_class):
    return TaskCandidate(
        product_code=product_code,
        description='',
        location_code=f"LOC-{product_code}",
        current_qty=current_qty,
        min_qty=min_qty,
        max_qty=max_qty,
        abc_class=abc_class,
        priority=abc_priority(abc_class)
    )


class TestWaveRules(unittest.TestCase):

    def test_abc_priority(self):
        self.assertEqual(abc_priority('A'), 1)
        self.assertEqual(abc_priority('B'), 2)
        self.assertEqual(abc_priority('C'), 3)
        self.assertEqual(abc_priority(''), 3)
        self.assertEqual(abc_priority(None), 3)

    def test_is_below_minimum(self):
        """Test a location needs a positive minimum to be short."""
        self.assertTrue(is_below_minimum(5, 10))
        self.assertTrue(is_below_minimum(8, 8))
        self.assertFalse(is_below_minimum(9, 8))
        self.assertFalse(is_below_minimum(0, 0))

    def test_qty_to_replenish_fills_to_max(self):
        self.assertEqual(calculate_qty_to_replenish(5, 10, 50), 45)
        self.assertEqual(calculate_qty_to_replenish(8, 8, 20), 12)

    def test_qty_to_replenish_falls_back_to_min(self):
        """Test an inconsistent max below current replenishes min_qty."""
        self.assertEqual(calculate_qty_to_replenish(5, 5, 4), 5)
        self.assertEqual(calculate_qty_to_replenish(10, 10, 10), 10)

    def test_order_by_priority_then_shortage(self):
        """Test A before C, and larger shortages first within a class."""
        tasks = order_tasks([
            _candidate('C1', 8, 8, 20, 'C'),
            _candidate('A1', 5, 10, 50, 'A'),
            _candidate('B1', 2, 10, 30, 'B'),
            _candidate('A2', 0, 10, 50, 'A'),
        ])

        self.assertEqual([t.product_code for t in tasks], ['A2', 'A1', 'B1', 'C1'])

        for first, second in zip(tasks, tasks[1:]):
            self.assertLessEqual(first.priority, second.priority)
            if first.priority == second.priority:
                self.assertGreaterEqual(first.shortage, second.shortage)

    def test_order_is_stable_for_ties(self):
        tasks = order_tasks([
            _candidate('X', 5, 10, 20, 'C'),
            _candidate('Y', 5, 10, 20, 'C'),
        ])

        self.assertEqual([t.product_code for t in tasks], ['X', 'Y'])

    def test_format_wave_number(self):
        self.assertEqual(format_wave_number(date(2024, 3, 15), '01', 3), '20240315-01-003')
        self.assertEqual(format_wave_number(date(2024, 3, 15), '02', 12), '20240315-02-012')

    def test_wave_transitions(self):
        """Test failed and completed are terminal."""
        self.assertTrue(can_transition('generated', 'sent'))
        self.assertTrue(can_transition('generated', 'failed'))
        self.assertTrue(can_transition('sent', 'completed'))
        self.assertFalse(can_transition('generated', 'completed'))
        self.assertFalse(can_transition('failed', 'sent'))
        self.assertFalse(can_transition('completed', 'sent'))
        self.assertFalse(can_transition('unknown', 'sent'))


if __name__ == '__main__':
    unittest.main()
