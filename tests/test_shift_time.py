from __future__ import annotations

import datetime
import sys
import unittest
from pathlib import Path

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from errors import ValidationError  # noqa: E402
from ranks import Rank, is_special_assignment, position_group  # noqa: E402
from shift_time import TimeRange, format_hours, parse_time, place_pto, span_minutes  # noqa: E402


class ShiftTimeTests(unittest.TestCase):
    def test_day_shift_duration(self) -> None:
        self.assertEqual(TimeRange.of("08:00", "17:00").hours, 9.0)

    def test_midnight_crossing_duration_adds_a_day(self) -> None:
        self.assertEqual(TimeRange.of("21:30", "02:30").hours, 5.0)

    def test_equal_start_and_end_is_a_full_day(self) -> None:
        self.assertEqual(span_minutes(datetime.time(7, 0), datetime.time(7, 0)), 24 * 60)

    def test_partial_pto_leaves_trailing_remainder(self) -> None:
        window = place_pto(TimeRange.of("08:00", "17:00"), TimeRange.of("10:00", "14:00"))
        self.assertEqual(window.hours_used, 4.0)
        self.assertFalse(window.is_full_shift)
        self.assertEqual(window.remainder, TimeRange.of("14:00", "17:00"))
        self.assertEqual(window.remainder_hours, 3.0)

    def test_pto_to_end_of_shift_leaves_leading_remainder(self) -> None:
        window = place_pto(TimeRange.of("08:00", "17:00"), TimeRange.of("13:00", "17:00"))
        self.assertEqual(window.remainder, TimeRange.of("08:00", "13:00"))
        self.assertEqual(window.remainder_hours, 5.0)

    def test_full_range_has_no_remainder(self) -> None:
        window = place_pto(TimeRange.of("08:00", "17:00"), TimeRange.of("08:00", "17:00"))
        self.assertTrue(window.is_full_shift)
        self.assertIsNone(window.remainder)
        self.assertEqual(window.hours_used, 9.0)

    def test_midnight_crossing_partial_pto(self) -> None:
        window = place_pto(TimeRange.of("21:30", "02:30"), TimeRange.of("21:30", "23:30"))
        self.assertEqual(window.hours_used, 2.0)
        self.assertEqual(window.remainder, TimeRange.of("23:30", "02:30"))
        self.assertEqual(window.remainder_hours, 3.0)

    def test_pto_after_midnight_inside_overnight_shift(self) -> None:
        window = place_pto(TimeRange.of("21:30", "02:30"), TimeRange.of("00:30", "02:30"))
        self.assertEqual(window.hours_used, 2.0)
        self.assertEqual(window.remainder, TimeRange.of("21:30", "00:30"))

    def test_zero_length_range_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            place_pto(TimeRange.of("08:00", "17:00"), TimeRange.of("10:00", "10:00"))

    def test_range_outside_shift_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            place_pto(TimeRange.of("08:00", "17:00"), TimeRange.of("16:00", "18:00"))

    def test_parse_time_rejects_garbage(self) -> None:
        with self.assertRaises(ValidationError):
            parse_time("noon")
        self.assertEqual(parse_time("7:05"), datetime.time(7, 5))

    def test_hours_display_rounds_to_one_decimal(self) -> None:
        self.assertEqual(format_hours(20 / 60), "0.3")
        self.assertEqual(format_hours(4.0), "4.0")


class RankTests(unittest.TestCase):
    def test_parse_known_labels_and_aliases(self) -> None:
        self.assertIs(Rank.parse("Probationary"), Rank.PROBATIONARY)
        self.assertIs(Rank.parse(" PPO "), Rank.PROBATIONARY)
        self.assertIs(Rank.parse("Sgt"), Rank.SERGEANT)
        self.assertIsNone(Rank.parse("Cadet"))

    def test_capabilities(self) -> None:
        self.assertTrue(Rank.PROBATIONARY.is_probationary())
        self.assertFalse(Rank.PROBATIONARY.is_supervisor())
        self.assertTrue(Rank.LIEUTENANT.is_supervisor())
        self.assertFalse(Rank.CORPORAL.is_supervisor())

    def test_special_assignment_classification(self) -> None:
        self.assertTrue(is_special_assignment("Detective"))
        self.assertFalse(is_special_assignment("District 3"))
        self.assertFalse(is_special_assignment(""))
        self.assertFalse(is_special_assignment("Riding with partner"))
        self.assertFalse(is_special_assignment("Court Liaison", ["Court Liaison"]))
        self.assertEqual(position_group("district 4"), "Districts")
        self.assertEqual(position_group("Detective"), "Special")


if __name__ == "__main__":
    unittest.main()
