import unittest

from indi_pointing.exceptions import InvalidStatusCode
from indi_pointing.pointing import PointingStateMachine
from indi_pointing.positions import MotionState
from indi_pointing.status_codes import (
    ExternalStatusCode,
    StatusCodeMapper,
    parse_status_code,
)


class TestStatusCodeMapper(unittest.TestCase):
    """
    Tests for the mount status code vocabulary.

    Verifies that every known code maps to a motion state, that unknown
    codes are rejected, and that a PARKED report marks the owner parked once.
    """

    def test_every_code_maps(self):
        for code in ExternalStatusCode:
            self.assertIsInstance(StatusCodeMapper.map(code), MotionState)

    def test_selected_mappings(self):
        self.assertEqual(StatusCodeMapper.map(0), MotionState.TRACKING)
        self.assertEqual(StatusCodeMapper.map(2), MotionState.PARKING)
        self.assertEqual(StatusCodeMapper.map(5), MotionState.PARKED)
        self.assertEqual(StatusCodeMapper.map(6), MotionState.SLEWING)
        self.assertEqual(StatusCodeMapper.map(7), MotionState.IDLE)
        self.assertEqual(StatusCodeMapper.map(99), MotionState.IDLE)

    def test_string_codes(self):
        self.assertEqual(parse_status_code("05#"), ExternalStatusCode.PARKED)
        self.assertEqual(parse_status_code(" 10 "), ExternalStatusCode.FOLLOWING_SATELLITE)

    def test_invalid_codes(self):
        for raw in (12, 42, -1, "abc", "", True, 3.0, None):
            with self.assertRaises(InvalidStatusCode):
                StatusCodeMapper.map(raw)

    def test_invalid_code_is_value_error(self):
        with self.assertRaises(ValueError) as ctx:
            parse_status_code(42)
        self.assertEqual(ctx.exception.raw, 42)

    def test_describe(self):
        self.assertEqual(StatusCodeMapper.describe(5), "parked (5)")

    def test_parked_marks_owner_once(self):
        """
        A PARKED code parks the owner, and repeated reports do not re-fire.

        Expected Results:
            - The owner becomes parked on the first report.
            - "Mount parked." is emitted exactly once.
        """
        events = []
        owner = PointingStateMachine(notify=lambda level, msg: events.append(msg))
        StatusCodeMapper.map(ExternalStatusCode.PARKED, owner=owner)
        StatusCodeMapper.map(ExternalStatusCode.PARKED, owner=owner)
        self.assertTrue(owner.is_parked)
        self.assertEqual(events.count("Mount parked."), 1)

    def test_other_codes_leave_owner(self):
        owner = PointingStateMachine(notify=lambda *a: None)
        StatusCodeMapper.map(ExternalStatusCode.TRACKING, owner=owner)
        self.assertEqual(owner.state, MotionState.IDLE)


class TestApplyStatus(unittest.TestCase):
    """State machine driven by status reports."""

    def setUp(self):
        self.machine = PointingStateMachine(notify=lambda *a: None)

    def test_apply_status(self):
        self.assertEqual(self.machine.apply_status("6#"), MotionState.SLEWING)
        self.assertEqual(self.machine.apply_status(0), MotionState.TRACKING)
        self.assertEqual(self.machine.last_status_code, ExternalStatusCode.TRACKING)

    def test_invalid_status_keeps_state(self):
        self.machine.apply_status(0)
        with self.assertRaises(InvalidStatusCode):
            self.machine.apply_status(77)
        self.assertEqual(self.machine.state, MotionState.TRACKING)
        self.assertEqual(self.machine.last_status_code, ExternalStatusCode.TRACKING)

    def test_status_change_logged_on_edges(self):
        """Changes are logged once per edge, not on every repeated report."""
        self.machine.apply_status(0)
        with self.assertLogs("indi_pointing.pointing", level="INFO") as logs:
            self.machine.apply_status(0)
            self.machine.apply_status(5)
            self.machine.apply_status(5)
        changes = [line for line in logs.output if "Mount status changed" in line]
        self.assertEqual(len(changes), 1)
        self.assertIn("tracking (0) to parked (5)", changes[0])

    def test_parked_then_unparking(self):
        self.machine.apply_status(5)
        self.assertTrue(self.machine.is_parked)
        self.assertEqual(self.machine.apply_status(3), MotionState.TRACKING)
        self.assertFalse(self.machine.is_parked)


if __name__ == "__main__":
    unittest.main()
