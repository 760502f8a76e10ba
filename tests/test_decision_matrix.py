"""
tests/test_decision_matrix.py — Tests for nba_decision_matrix.py

Validates every branch of the model-vs-smart-money matrix, the p == 0.5
no-direction case, confidence formulas and argument validation.
"""

import pytest

from nba_decision_matrix import SIGNAL_STRENGTH, SIGNALS, generate_investment_signal

A, B = "Boston Celtics", "Miami Heat"


def _signal(p, direction, concentration=30.0):
    return generate_investment_signal(p, direction, concentration, A, B)


class TestConsistent:

    def test_strong_buy_a(self):
        s = _signal(0.85, "YES")
        assert s.signal == "STRONG_BUY_A"
        assert s.confidence == pytest.approx(70 + 0.7 * 30)
        assert A in s.reasoning

    def test_moderate_buy_a(self):
        s = _signal(0.70, "YES")
        assert s.signal == "MODERATE_BUY_A"
        assert s.confidence == pytest.approx(70 + 0.4 * 30)

    def test_strong_buy_b(self):
        s = _signal(0.20, "NO")
        assert s.signal == "STRONG_BUY_B"
        assert B in s.reasoning

    def test_agreement_without_conviction_is_neutral(self):
        s = _signal(0.62, "YES")
        assert (s.signal, s.confidence) == ("NEUTRAL", 50.0)


class TestConflict:

    def test_concentrated_conflict(self):
        s = _signal(0.70, "NO", concentration=60.0)
        assert (s.signal, s.confidence) == ("CONFLICT_WARNING", 30.0)
        assert s.reasoning.startswith("Warning")

    def test_dispersed_conflict(self):
        s = _signal(0.30, "YES", concentration=20.0)
        assert s.signal == "CONFLICT_WARNING"
        assert s.reasoning.startswith("Split")
        assert A in s.reasoning and B in s.reasoning


class TestSmartMoneyNeutral:

    def test_model_leads(self):
        s = _signal(0.75, "NEUTRAL")
        assert s.signal == "MODERATE_BUY_A"
        assert s.confidence == pytest.approx(55 + 0.5 * 20)

    def test_model_leads_b(self):
        assert _signal(0.20, "NEUTRAL").signal == "MODERATE_BUY_B"

    def test_both_quiet(self):
        s = _signal(0.60, "NEUTRAL")
        assert (s.signal, s.confidence) == ("NEUTRAL", 50.0)


class TestFollowSmartMoney:

    def test_concentrated(self):
        s = _signal(0.55, "YES", concentration=50.0)
        assert s.signal == "MODERATE_BUY_A"
        assert s.confidence == pytest.approx(55 + 0.5 * 20)

    def test_coin_flip_has_no_direction(self):
        s = _signal(0.50, "NO", concentration=30.0)
        assert s.signal == "WEAK_BUY_B"
        assert s.confidence == pytest.approx(55 + 0.3 * 20)

    def test_coin_flip_with_neutral_money(self):
        assert _signal(0.50, "NEUTRAL").signal == "NEUTRAL"


class TestValidation:

    @pytest.mark.parametrize("direction", ["BUY", "yes", ""])
    def test_bad_direction(self, direction):
        with pytest.raises(ValueError):
            _signal(0.6, direction)

    @pytest.mark.parametrize("p", [-0.1, 1.2])
    def test_bad_probability(self, p):
        with pytest.raises(ValueError):
            _signal(p, "YES")

    def test_every_signal_has_a_strength(self):
        assert set(SIGNALS) == set(SIGNAL_STRENGTH)
        assert _signal(0.85, "YES").strength == 5
        assert _signal(0.70, "NO", 60.0).strength == 1
