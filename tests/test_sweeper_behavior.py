import time
import unittest
from unittest.mock import MagicMock

from wapair.sweeper import Sweeper


class SweeperBehaviorTests(unittest.TestCase):
    def test_run_once_sweeps_without_probe_by_default(self):
        """Validate scenario: run once sweeps and skips the probe when disabled."""
        lc = MagicMock()
        lc.sweep.return_value = 3
        sw = Sweeper(lc, interval_s=60, probe_interval_s=0)
        self.assertEqual(sw.run_once(now=1000.0), 3)
        lc.store.probe_primary.assert_not_called()

    def test_probe_runs_when_interval_elapsed(self):
        """Validate scenario: probe runs once its interval elapsed."""
        lc = MagicMock()
        lc.sweep.return_value = 0
        sw = Sweeper(lc, interval_s=60, probe_interval_s=30)
        sw.run_once(now=1000.0)
        sw.run_once(now=1010.0)
        sw.run_once(now=1031.0)
        self.assertEqual(lc.store.probe_primary.call_count, 2)

    def test_primary_marked_down_is_rechecked_every_tick(self):
        """Validate scenario: a primary marked down after a timeout is rechecked every tick even with periodic checks off."""
        lc = MagicMock()
        lc.sweep.return_value = 0
        lc.store.primary_available = False
        sw = Sweeper(lc, interval_s=60, probe_interval_s=0)
        sw.run_once(now=1000.0)
        sw.run_once(now=1001.0)
        self.assertEqual(lc.store.probe_primary.call_count, 2)

        lc.store.primary = None
        sw.run_once(now=1002.0)
        self.assertEqual(lc.store.probe_primary.call_count, 2)

    def test_probe_crash_does_not_stop_sweep(self):
        """Validate scenario: probe crash does not stop the sweep."""
        lc = MagicMock()
        lc.store.probe_primary.side_effect = RuntimeError("driver gone")
        lc.sweep.return_value = 1
        sw = Sweeper(lc, interval_s=60, probe_interval_s=5)
        with self.assertLogs("wapair", level="ERROR"):
            self.assertEqual(sw.run_once(now=1000.0), 1)

    def test_interval_has_lower_bound(self):
        """Validate scenario: sweep interval has a lower bound."""
        self.assertEqual(Sweeper(MagicMock(), interval_s=0).interval_s, 60.0)
        self.assertEqual(Sweeper(MagicMock(), interval_s=0.2).interval_s, 1.0)

    def test_start_stop_thread(self):
        """Validate scenario: start and stop the daemon thread."""
        lc = MagicMock()
        lc.sweep.return_value = 0
        sw = Sweeper(lc, interval_s=60)
        sw.start()
        try:
            self.assertTrue(sw.running)
            first = sw._thread
            sw.start()
            self.assertIs(sw._thread, first)
            self.assertTrue(first.daemon)
        finally:
            sw.stop(timeout=2.0)
        deadline = time.time() + 2.0
        while sw.running and time.time() < deadline:
            time.sleep(0.01)
        self.assertFalse(sw.running)


if __name__ == "__main__":
    unittest.main()
