# PATH: tests/unit/test_state_machine.py
"""
Tests for the transaction lifecycle state machine.
"""

import unittest

from execution.state_machine import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    InvalidTransitionError,
    TransactionStateMachine,
    TxState,
)


class TestTransactionStateMachine(unittest.TestCase):
    def setUp(self):
        self.machine = TransactionStateMachine(opportunity_id="WETH_USDC_uniswap_v2_sushiswap")

    def _submit(self):
        self.machine.transition_to(TxState.GAS_PRICED)
        self.machine.transition_to(TxState.SIGNED)
        self.machine.transition_to(TxState.SUBMITTED)

    def test_initial_state(self):
        self.assertEqual(self.machine.state, TxState.BUILT)
        self.assertFalse(self.machine.is_terminal)
        self.assertEqual(self.machine.history, [])

    def test_happy_path(self):
        self._submit()
        self.machine.transition_to(TxState.CONFIRMED)
        self.assertTrue(self.machine.is_terminal)
        self.assertEqual(
            [t.to_state for t in self.machine.history],
            [TxState.GAS_PRICED, TxState.SIGNED, TxState.SUBMITTED, TxState.CONFIRMED],
        )

    def test_cannot_skip_signing(self):
        self.machine.transition_to(TxState.GAS_PRICED)
        with self.assertRaises(InvalidTransitionError):
            self.machine.transition_to(TxState.SUBMITTED)

    def test_late_confirmation_after_timeout(self):
        self._submit()
        self.machine.transition_to(TxState.TIMED_OUT)
        self.machine.transition_to(TxState.REVERTED, reason="receipt status 0")
        self.assertEqual(self.machine.state, TxState.REVERTED)

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            self.assertEqual(VALID_TRANSITIONS[state], [])
        self.assertIn(TxState.CANCELLED, TERMINAL_STATES)

    def test_fail_before_submission(self):
        self.machine.transition_to(TxState.GAS_PRICED)
        self.assertIsNotNone(self.machine.fail("signing failed"))
        self.assertEqual(self.machine.state, TxState.FAILED)

    def test_fail_after_submission_is_ignored(self):
        self._submit()
        self.assertIsNone(self.machine.fail("too late"))
        self.assertEqual(self.machine.state, TxState.SUBMITTED)

    def test_to_dict(self):
        self.machine.tx_hash = "0x" + "ab" * 32
        self.machine.transition_to(TxState.GAS_PRICED, metadata={"nonce": 4})
        data = self.machine.to_dict()
        self.assertEqual(data["state"], "GAS_PRICED")
        self.assertEqual(data["history"][0]["from"], "BUILT")
        self.assertEqual(self.machine.history[0].metadata, {"nonce": 4})


if __name__ == "__main__":
    unittest.main()
