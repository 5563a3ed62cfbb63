"""
Tests for Drop Preset System
Each preset forces a landing bin; the round must settle there with the right balance.
"""

import pytest
from drop_presets import DropPreset
from physics import BallState, MAX_TICKS


class TestEdgeJackpot:
    """Leftmost bin: 10 x 1000 paid on a 990 balance."""

    def test_balance_after_settle(self):
        result = DropPreset.edge_jackpot()
        assert result["balance"] == 10990, (
            f"Edge jackpot: balance={result['balance']} (expected 990 + 10000)"
        )

    def test_result_display(self):
        result = DropPreset.edge_jackpot()
        res = result["result"]
        assert res.amount_won == 10000
        assert res.wager == 10
        assert res.outcome == "win"

    def test_lands_in_bin_zero(self):
        result = DropPreset.edge_jackpot()
        ball = result["ball"]
        assert result["ctrl"].layout.bin_index_at(ball.position[0]) == 0

    def test_simulation_completes(self):
        result = DropPreset.edge_jackpot()
        assert result["elapsed"] < MAX_TICKS


class TestCenterLoss:
    """Center bin pays x0.2: less back than was staked."""

    def test_pays_less_than_stake(self):
        result = DropPreset.center_loss()
        res = result["result"]
        assert res.amount_won == 2
        assert res.amount_won < res.wager
        assert res.outcome == "loss"
        assert result["balance"] == 992


class TestInsufficientBalance:
    """Wager 100 on a balance of 50 is refused outright."""

    def test_no_ball_no_debit(self):
        result = DropPreset.insufficient_balance()
        assert result["ball"] is None
        assert result["balance"] == 50
        assert result["ctrl"].balls == []
        assert not result["result"].visible


class TestFullSweep:
    """One ball per bin, all in the air together."""

    def test_every_ball_lands_in_its_bin(self):
        result = DropPreset.full_sweep()
        landed = result["landed"]
        assert len(landed) == 21
        for target, actual in landed.items():
            assert actual == target, f"ball aimed at bin {target} landed in {actual}"

    def test_balance_is_total_payout(self):
        result = DropPreset.full_sweep(wager=10)
        expected = sum(b.payout for b in result["balls"])
        assert result["balance"] == expected
        assert result["ctrl"].state.balls_settled == 21


class TestSetupOnly:
    """run=False places the wager and stops before the first tick."""

    SCENARIOS = [
        DropPreset.edge_jackpot,
        DropPreset.center_loss,
    ]

    @pytest.mark.parametrize("scenario_fn", SCENARIOS)
    def test_ball_in_flight(self, scenario_fn):
        result = scenario_fn(run=False)
        assert result["ball"].state == BallState.IN_FLIGHT
        assert result["ball"].ticks == 0

    @pytest.mark.parametrize("scenario_fn", SCENARIOS)
    def test_elapsed_is_zero(self, scenario_fn):
        result = scenario_fn(run=False)
        assert result["elapsed"] == 0

    @pytest.mark.parametrize("scenario_fn", SCENARIOS)
    def test_wager_debited(self, scenario_fn):
        result = scenario_fn(run=False)
        assert result["balance"] == 990

    def test_sweep_setup_spends_everything(self):
        result = DropPreset.full_sweep(run=False)
        assert len(result["balls"]) == 21
        assert result["balance"] == 0
        assert result["landed"] == {}


class TestEventQueue:
    """Headless runs drain the controller queue every frame."""

    def test_nothing_left_queued(self):
        result = DropPreset.full_sweep()
        assert result["ctrl"].pending_events == []

    def test_single_drop_drained(self):
        result = DropPreset.edge_jackpot()
        assert result["ctrl"].pending_events == []
