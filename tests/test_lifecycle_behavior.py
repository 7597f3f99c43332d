import random
import time
import unittest

from wapair.backends.memory import MemoryBackend
from wapair.codes import CodeGenerator
from wapair.errors import CodeGenerationError, Outcome
from wapair.lifecycle import (
    CloseReason,
    ConnectionSignal,
    ConnectionState,
    PairingLifecycle,
    SignalContext,
)
from wapair.models import PairingStatus
from wapair.settings import PairingSettings
from wapair.store import PairingStore


class _Clock:
    def __init__(self, t: float = 1000.0):
        self.t = float(t)

    def __call__(self) -> float:
        return self.t

    def advance(self, s: float) -> None:
        self.t += float(s)


class _SeqGenerator:
    """Generator returning a fixed sequence of candidates, repeating the last one."""

    def __init__(self, codes):
        self.codes = list(codes)
        self.calls = 0

    def generate(self, fmt, length):
        idx = min(self.calls, len(self.codes) - 1)
        self.calls += 1
        return self.codes[idx]


class _FailingGenerator:
    def generate(self, fmt, length):
        raise CodeGenerationError("cap reached")


class _BrokenStore(PairingStore):
    def sweep_expired(self, now=None):
        raise RuntimeError("boom")


class _StallingPrimary(MemoryBackend):
    """Primary that stalls on inserts and reads while `slow` is set."""

    name = "database"

    def __init__(self, delay_s: float):
        super().__init__()
        self.delay_s = delay_s
        self.slow = True
        self.committed = 0

    def _stall(self):
        if self.slow:
            time.sleep(self.delay_s)

    def insert_unique(self, record, now):
        self._stall()
        ok = super().insert_unique(record, now)
        if ok:
            self.committed += 1
        return ok

    def find(self, code):
        self._stall()
        return super().find(code)

    def records(self):
        self._stall()
        return super().records()


def _lifecycle(clock, settings=None, generator=None, store=None):
    store = store or PairingStore(fallback=MemoryBackend(), clock=clock)
    return PairingLifecycle(store, settings or PairingSettings(), generator=generator, clock=clock)


class LifecycleGenerationBehaviorTests(unittest.TestCase):
    def test_generate_issues_pending_record(self):
        """Validate scenario: generate issues a pending record with normalized phone."""
        clock = _Clock()
        lc = _lifecycle(clock)
        result = lc.generate("0712 345 678")
        self.assertIs(result.outcome, Outcome.OK)
        rec = result.record
        self.assertEqual(len(rec.code), 8)
        self.assertEqual(rec.phone_number, "+254712345678")
        self.assertIs(rec.status, PairingStatus.PENDING)
        self.assertEqual(rec.created_at, 1000.0)
        self.assertEqual(rec.expires_at, 1600.0)
        self.assertTrue(rec.session_id.startswith("WAPAIR_1000000_"))
        self.assertEqual(lc.last_code, rec.code)

    def test_generate_without_phone_is_allowed(self):
        """Validate scenario: generate without a phone number is allowed."""
        lc = _lifecycle(_Clock())
        result = lc.generate()
        self.assertTrue(result.ok)
        self.assertIsNone(result.record.phone_number)

    def test_invalid_phone_is_rejected(self):
        """Validate scenario: invalid phone is rejected before any store write."""
        lc = _lifecycle(_Clock())
        result = lc.generate("12ab")
        self.assertIs(result.outcome, Outcome.INVALID_INPUT)
        self.assertEqual(result.detail, "invalid_phone_number")
        self.assertEqual(lc.store.count(), 0)

    def test_collision_retries_until_free_code(self):
        """Validate scenario: a colliding candidate is retried."""
        gen = _SeqGenerator(["AB12CD34", "AB12CD34", "ZZ99YY88"])
        lc = _lifecycle(_Clock(), generator=gen)
        first = lc.generate()
        second = lc.generate()
        self.assertEqual(first.record.code, "AB12CD34")
        self.assertEqual(second.record.code, "ZZ99YY88")
        self.assertEqual(gen.calls, 3)

    def test_exhaustion_after_max_attempts(self):
        """Validate scenario: repeated collisions end in generation exhausted."""
        gen = _SeqGenerator(["AB12CD34"])
        lc = _lifecycle(_Clock(), settings=PairingSettings(max_attempts=5), generator=gen)
        self.assertTrue(lc.generate().ok)
        gen.calls = 0
        result = lc.generate()
        self.assertIs(result.outcome, Outcome.GENERATION_EXHAUSTED)
        self.assertEqual(result.detail, "code_space_exhausted")
        self.assertEqual(gen.calls, 5)

    def test_small_code_space_yields_distinct_live_codes(self):
        """Validate scenario: filling a one-digit code space issues each code once, then exhausts."""
        settings = PairingSettings(code_format="numeric", code_length=1, max_attempts=300)
        lc = _lifecycle(_Clock(), settings=settings, generator=CodeGenerator(rng=random.Random(5)))
        codes = []
        for _ in range(9):
            result = lc.generate()
            self.assertIs(result.outcome, Outcome.OK)
            codes.append(result.record.code)
        self.assertEqual(sorted(codes), list("123456789"))
        self.assertEqual(lc.store.count(), 9)
        result = lc.generate()
        self.assertIs(result.outcome, Outcome.GENERATION_EXHAUSTED)
        self.assertEqual(lc.store.count(), 9)

    def test_generator_cap_maps_to_exhausted(self):
        """Validate scenario: generator cap maps to generation exhausted."""
        lc = _lifecycle(_Clock(), generator=_FailingGenerator())
        result = lc.generate()
        self.assertIs(result.outcome, Outcome.GENERATION_EXHAUSTED)
        self.assertEqual(result.detail, "code_generation_failed")

    def test_expired_code_is_reissued(self):
        """Validate scenario: a code can be issued again once its holder expired."""
        clock = _Clock()
        lc = _lifecycle(clock, generator=_SeqGenerator(["AB12CD34"]))
        first = lc.generate()
        clock.advance(601)
        second = lc.generate()
        self.assertTrue(second.ok)
        self.assertEqual(second.record.code, first.record.code)
        self.assertNotEqual(second.record.session_id, first.record.session_id)


class LifecycleStatusBehaviorTests(unittest.TestCase):
    def test_numeric_code_expires_idempotently(self):
        """Validate scenario: numeric code expiry is reported on every read."""
        clock = _Clock()
        lc = _lifecycle(clock, settings=PairingSettings(code_format="numeric", code_length=6))
        code = lc.generate("712345678").record.code
        self.assertTrue(code.isdigit())
        self.assertEqual(len(code), 6)

        clock.advance(300)
        self.assertIs(lc.check_status(code).outcome, Outcome.OK)

        clock.advance(301)
        first = lc.check_status(code)
        second = lc.check_status(code)
        self.assertIs(first.outcome, Outcome.EXPIRED)
        self.assertIs(second.outcome, Outcome.EXPIRED)
        self.assertIs(lc.store.find(code).status, PairingStatus.EXPIRED)

    def test_malformed_and_unknown_codes(self):
        """Validate scenario: malformed and unknown codes."""
        lc = _lifecycle(_Clock())
        self.assertIs(lc.check_status("bad").outcome, Outcome.INVALID_INPUT)
        self.assertIs(lc.check_status(None).outcome, Outcome.INVALID_INPUT)
        self.assertIs(lc.check_status("ZZ99YY88").outcome, Outcome.NOT_FOUND)

    def test_check_accepts_lowercase_input(self):
        """Validate scenario: status check normalizes user input."""
        lc = _lifecycle(_Clock(), generator=_SeqGenerator(["AB12CD34"]))
        lc.generate()
        self.assertTrue(lc.check_status("ab12-cd34").ok)

    def test_lookup_session(self):
        """Validate scenario: session lookup follows the same expiry rules."""
        clock = _Clock()
        lc = _lifecycle(clock)
        rec = lc.generate().record
        self.assertEqual(lc.lookup_session(rec.session_id).record.code, rec.code)
        self.assertIs(lc.lookup_session("").outcome, Outcome.INVALID_INPUT)
        self.assertIs(lc.lookup_session("WAPAIR_0_000000").outcome, Outcome.NOT_FOUND)
        clock.advance(601)
        self.assertIs(lc.lookup_session(rec.session_id).outcome, Outcome.EXPIRED)

    def test_verify_counts_attempts(self):
        """Validate scenario: verify counts attempts without linking while offline."""
        lc = _lifecycle(_Clock())
        code = lc.generate().record.code
        lc.verify(code)
        result = lc.verify(code)
        self.assertTrue(result.ok)
        self.assertEqual(result.record.attempts, 2)
        self.assertIs(result.record.status, PairingStatus.PENDING)
        self.assertEqual(lc.store.find(code).attempts, 2)

    def test_verify_links_when_connection_open(self):
        """Validate scenario: verify links when the client connection is open."""
        clock = _Clock()
        lc = _lifecycle(clock)
        lc.on_connection_signal(ConnectionSignal.OPEN)
        code = lc.generate().record.code
        clock.advance(10)
        result = lc.verify(code)
        self.assertIs(result.record.status, PairingStatus.LINKED)
        self.assertEqual(result.record.linked_at, 1010.0)

    def test_verify_expired_still_counts_attempt(self):
        """Validate scenario: verifying an expired code counts the attempt."""
        clock = _Clock()
        lc = _lifecycle(clock)
        code = lc.generate().record.code
        clock.advance(601)
        result = lc.verify(code)
        self.assertIs(result.outcome, Outcome.EXPIRED)
        self.assertEqual(result.record.attempts, 1)
        self.assertIs(result.record.status, PairingStatus.EXPIRED)

    def test_linked_record_past_ttl_reports_expired_but_stays_linked(self):
        """Validate scenario: a linked record past its ttl reads as expired but keeps its status."""
        clock = _Clock()
        lc = _lifecycle(clock)
        code = lc.generate().record.code
        lc.on_connection_signal(ConnectionSignal.OPEN)
        clock.advance(700)
        result = lc.check_status(code)
        self.assertIs(result.outcome, Outcome.EXPIRED)
        self.assertIs(lc.store.find(code).status, PairingStatus.LINKED)

    def test_sweep_removes_expired_and_survives_store_errors(self):
        """Validate scenario: sweep removes expired records and never raises."""
        clock = _Clock()
        lc = _lifecycle(clock)
        lc.generate()
        lc.generate()
        clock.advance(601)
        self.assertEqual(lc.sweep(), 2)
        self.assertEqual(lc.store.count(), 0)

        broken = _lifecycle(clock, store=_BrokenStore(clock=clock))
        with self.assertLogs("wapair", level="ERROR"):
            self.assertEqual(broken.sweep(), 0)


class LifecycleSignalBehaviorTests(unittest.TestCase):
    def test_qr_open_close_walks_the_state_machine(self):
        """Validate scenario: qr, open and logged-out close walk a record through its states."""
        clock = _Clock()
        lc = _lifecycle(clock)
        code = lc.generate("254712345678").record.code

        self.assertEqual(lc.on_connection_signal(ConnectionSignal.QR, SignalContext(payload="2@abc")), 1)
        rec = lc.store.find(code)
        self.assertIs(rec.status, PairingStatus.QR_READY)
        self.assertEqual(rec.aux_data["qr"], "2@abc")
        self.assertIs(lc.connection_state, ConnectionState.QR_READY)
        self.assertTrue(lc.connection_snapshot()["has_qr"])

        clock.advance(5)
        self.assertEqual(lc.on_connection_signal(ConnectionSignal.OPEN), 1)
        rec = lc.store.find(code)
        self.assertIs(rec.status, PairingStatus.LINKED)
        self.assertEqual(rec.linked_at, 1005.0)
        self.assertEqual(rec.aux_data["qr"], "2@abc")
        self.assertTrue(lc.is_connection_open())

        ctx = SignalContext(reason=CloseReason.LOGGED_OUT)
        self.assertEqual(lc.on_connection_signal(ConnectionSignal.CLOSE, ctx), 1)
        rec = lc.store.find(code)
        self.assertIs(rec.status, PairingStatus.DISCONNECTED)
        self.assertEqual(rec.aux_data["disconnect_reason"], "logged_out")
        self.assertIs(lc.connection_state, ConnectionState.LOGGED_OUT)

        self.assertEqual(lc.on_connection_signal(ConnectionSignal.OPEN), 0)
        self.assertIs(lc.store.find(code).status, PairingStatus.DISCONNECTED)

    def test_transient_close_waits_for_reconnect(self):
        """Validate scenario: transient close puts the client back to connecting."""
        lc = _lifecycle(_Clock())
        code = lc.generate().record.code
        lc.on_connection_signal("open")
        lc.on_connection_signal("close")
        self.assertIs(lc.connection_state, ConnectionState.CONNECTING)
        self.assertEqual(lc.store.find(code).aux_data["disconnect_reason"], "transient")

    def test_repeated_qr_refreshes_payload(self):
        """Validate scenario: a new qr refreshes the payload of qr-ready records."""
        lc = _lifecycle(_Clock())
        code = lc.generate().record.code
        lc.on_connection_signal("qr", SignalContext(payload="first"))
        lc.on_connection_signal("qr", SignalContext(payload="second"))
        rec = lc.store.find(code)
        self.assertIs(rec.status, PairingStatus.QR_READY)
        self.assertEqual(rec.aux_data["qr"], "second")

    def test_signal_targets_single_code(self):
        """Validate scenario: a code in the signal context narrows it to that record."""
        lc = _lifecycle(_Clock(), generator=_SeqGenerator(["AB12CD34", "ZZ99YY88"]))
        lc.generate()
        lc.generate()
        changed = lc.on_connection_signal("open", SignalContext(code="ZZ99YY88"))
        self.assertEqual(changed, 1)
        self.assertIs(lc.store.find("ZZ99YY88").status, PairingStatus.LINKED)
        self.assertIs(lc.store.find("AB12CD34").status, PairingStatus.PENDING)

    def test_open_ignores_expired_records(self):
        """Validate scenario: open does not link records past their ttl."""
        clock = _Clock()
        lc = _lifecycle(clock)
        code = lc.generate().record.code
        clock.advance(601)
        self.assertEqual(lc.on_connection_signal("open"), 0)
        self.assertIs(lc.store.find(code).status, PairingStatus.PENDING)
        self.assertIs(lc.check_status(code).outcome, Outcome.EXPIRED)

    def test_unknown_signal_raises(self):
        """Validate scenario: unknown signal names raise value errors."""
        lc = _lifecycle(_Clock())
        with self.assertRaises(ValueError):
            lc.on_connection_signal("reboot")


class LifecycleDegradedStoreBehaviorTests(unittest.TestCase):
    def test_link_made_during_primary_timeout_survives_recovery(self):
        """Validate scenario: a code linked while the primary timed out stays linked after it recovers."""
        clock = _Clock()
        primary = _StallingPrimary(delay_s=0.3)
        store = PairingStore(primary=primary, fallback=MemoryBackend(), timeout_s=0.05, clock=clock)
        lc = _lifecycle(clock, store=store)
        try:
            store.set_primary_available(True)
            with self.assertLogs("wapair.store", level="WARNING"):
                code = lc.generate().record.code
            self.assertFalse(store.primary_available)
            self.assertEqual(lc.on_connection_signal("open"), 1)
            self.assertIs(lc.check_status(code).record.status, PairingStatus.LINKED)

            primary.slow = False
            deadline = time.monotonic() + 3.0
            while time.monotonic() < deadline and not (primary.committed == 1 and primary.find(code) is None):
                time.sleep(0.01)
            self.assertEqual(primary.committed, 1)
            self.assertIsNone(primary.find(code))

            self.assertTrue(store.probe_primary())
            result = lc.check_status(code)
            self.assertIs(result.outcome, Outcome.OK)
            self.assertIs(result.record.status, PairingStatus.LINKED)
        finally:
            store.close()



if __name__ == "__main__":
    unittest.main()
