"""Access control and cooldown tests."""

import unittest

from privsalary import (
    CooldownActiveError,
    EventKind,
    InvalidParameterError,
    NotOwnerError,
    OperationKind,
    RateLimiter,
    RoleRegistry,
)
from privsalary.util import ManualClock

from support import ALICE, BOB, COOLDOWN, MALLORY, OWNER, World


class TestRoleRegistry(unittest.TestCase):

    def test_owner_is_provider(self):
        roles = RoleRegistry(OWNER)
        self.assertTrue(roles.is_owner(OWNER))
        self.assertTrue(roles.is_provider(OWNER))

    def test_empty_owner_rejected(self):
        with self.assertRaises(ValueError):
            RoleRegistry("")

    def test_set_owner_grants_provider_and_keeps_previous(self):
        roles = RoleRegistry(OWNER)
        previous = roles.set_owner(ALICE)
        self.assertEqual(previous, OWNER)
        self.assertTrue(roles.is_provider(ALICE))
        self.assertTrue(roles.is_provider(OWNER))
        self.assertFalse(roles.is_owner(OWNER))


class TestAdminHandlers(unittest.TestCase):

    def setUp(self):
        self.w = World(providers=())
        self.agg = self.w.agg

    def _kinds(self):
        return [e.kind for e in self.agg.events.all()]

    def test_add_provider_idempotent(self):
        self.agg.add_provider(OWNER, ALICE)
        self.agg.add_provider(OWNER, ALICE)
        self.assertEqual(self.agg.providers, sorted([OWNER, ALICE]))
        self.assertEqual(self._kinds().count(EventKind.PROVIDER_ADDED), 1)

    def test_remove_provider_idempotent(self):
        self.agg.add_provider(OWNER, ALICE)
        self.agg.remove_provider(OWNER, ALICE)
        self.agg.remove_provider(OWNER, ALICE)
        self.agg.remove_provider(OWNER, BOB)
        self.assertFalse(self.agg.is_provider(ALICE))
        self.assertEqual(self._kinds().count(EventKind.PROVIDER_REMOVED), 1)

    def test_owner_cannot_lose_provider_status(self):
        self.agg.remove_provider(OWNER, OWNER)
        self.assertTrue(self.agg.is_provider(OWNER))

    def test_provider_admin_requires_owner(self):
        self.agg.add_provider(OWNER, ALICE)
        with self.assertRaises(NotOwnerError):
            self.agg.add_provider(ALICE, MALLORY)
        with self.assertRaises(NotOwnerError):
            self.agg.remove_provider(ALICE, OWNER)

    def test_transfer_ownership(self):
        self.agg.transfer_ownership(OWNER, ALICE)

        self.assertEqual(self.agg.owner, ALICE)
        self.assertTrue(self.agg.is_provider(ALICE))
        self.assertTrue(self.agg.is_provider(OWNER))
        with self.assertRaises(NotOwnerError):
            self.agg.open_batch(OWNER)
        self.assertEqual(self.agg.open_batch(ALICE), 1)

        event = self.agg.events.query(kind=EventKind.OWNERSHIP_CHANGED)[0]
        self.assertEqual(event.payload, {"previous_owner": OWNER, "new_owner": ALICE})

    def test_transfer_ownership_requires_owner(self):
        with self.assertRaises(NotOwnerError):
            self.agg.transfer_ownership(MALLORY, MALLORY)

    def test_transfer_to_empty_address_rejected(self):
        with self.assertRaises(InvalidParameterError):
            self.agg.transfer_ownership(OWNER, "")
        self.assertEqual(self.agg.owner, OWNER)


class TestCooldownPolicy(unittest.TestCase):

    def setUp(self):
        self.w = World()
        self.agg = self.w.agg

    def test_zero_cooldown_rejected(self):
        with self.assertRaises(InvalidParameterError):
            self.agg.set_cooldown_seconds(OWNER, 0)
        self.assertEqual(self.agg.cooldown_seconds, COOLDOWN)

    def test_negative_cooldown_rejected(self):
        with self.assertRaises(InvalidParameterError):
            self.agg.set_cooldown_seconds(OWNER, -5)

    def test_set_cooldown_owner_only(self):
        with self.assertRaises(NotOwnerError):
            self.agg.set_cooldown_seconds(ALICE, 10)

    def test_set_cooldown_applies_to_next_check(self):
        self.agg.set_cooldown_seconds(OWNER, 10)
        event = self.agg.events.query(kind=EventKind.COOLDOWN_CHANGED)[0]
        self.assertEqual(event.payload, {"previous_seconds": COOLDOWN, "cooldown_seconds": 10})

        self.agg.open_batch(OWNER)
        self.w.submit(ALICE, 1, 1, 1)
        self.w.wait(10)
        self.w.submit(ALICE, 1, 1, 1)


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.clock = ManualClock(start=0.0)
        self.limiter = RateLimiter(30, clock=self.clock)

    def test_first_call_allowed(self):
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.assertEqual(self.limiter.last_call(ALICE, OperationKind.SUBMISSION), 0.0)

    def test_boundary_is_inclusive(self):
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.clock.advance(29.5)
        with self.assertRaises(CooldownActiveError) as ctx:
            self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.assertAlmostEqual(ctx.exception.retry_after, 0.5)
        self.clock.advance(0.5)
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)

    def test_rejected_call_does_not_move_window(self):
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.clock.advance(10)
        with self.assertRaises(CooldownActiveError):
            self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.assertEqual(self.limiter.last_call(ALICE, OperationKind.SUBMISSION), 0.0)

    def test_kinds_tracked_separately(self):
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION)
        self.limiter.check_and_record(ALICE, OperationKind.DECRYPTION_REQUEST)
        self.limiter.check_and_record(BOB, OperationKind.SUBMISSION)

    def test_explicit_now(self):
        self.limiter.check_and_record(ALICE, OperationKind.SUBMISSION, now=100.0)
        self.assertFalse(self.limiter.check(ALICE, OperationKind.SUBMISSION, now=120.0).allowed)
        self.assertTrue(self.limiter.check(ALICE, OperationKind.SUBMISSION, now=130.0).allowed)

    def test_invalid_construction(self):
        with self.assertRaises(InvalidParameterError):
            RateLimiter(0)
        with self.assertRaises(InvalidParameterError):
            RateLimiter(True)


if __name__ == "__main__":
    unittest.main()
