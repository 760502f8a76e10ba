"""
PolyNBA — Model vs Smart-Money Decision Matrix

Combines the engine's probability for team A with the direction of the large
Polymarket holders ("smart money") and how concentrated their holdings are,
and turns the pair into a trading signal. The caller supplies the holder
data; nothing in the prediction pipeline scrapes Polymarket holders.

  model strength = |p − 0.5| × 2            (0 = coin flip, 1 = certain)

  agree, strength > 0.3     STRONG (> 0.5) or MODERATE buy    70 + 30·s
  disagree                  CONFLICT_WARNING                  30
  smart money neutral       MODERATE buy if s > 0.4           55 + 20·s
                            else NEUTRAL                      50
  strength < 0.2            follow smart money: MODERATE if
                            concentration > 40 else WEAK      55 + 20·c/100
  anything else             NEUTRAL                           50
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

log = logging.getLogger(__name__)

SMART_MONEY_DIRECTIONS = ("YES", "NO", "NEUTRAL")

SIGNALS = (
    "STRONG_BUY_A", "MODERATE_BUY_A", "WEAK_BUY_A",
    "NEUTRAL",
    "WEAK_BUY_B", "MODERATE_BUY_B", "STRONG_BUY_B",
    "CONFLICT_WARNING",
)

# Display strength per signal (higher = more actionable)
SIGNAL_STRENGTH: Dict[str, int] = {
    "STRONG_BUY_A":     5,
    "MODERATE_BUY_A":   4,
    "WEAK_BUY_A":       3,
    "NEUTRAL":          2,
    "WEAK_BUY_B":       3,
    "MODERATE_BUY_B":   4,
    "STRONG_BUY_B":     5,
    "CONFLICT_WARNING": 1,
}

CONSISTENT_MIN_STRENGTH = 0.3
STRONG_STRENGTH         = 0.5
NEUTRAL_MIN_STRENGTH    = 0.4
WEAK_MAX_STRENGTH       = 0.2
HIGH_CONCENTRATION      = 50.0
MODERATE_CONCENTRATION  = 40.0


@dataclass(frozen=True)
class InvestmentSignal:
    ai_probability_a:      float
    smart_money_direction: str
    whale_concentration:   float      # % of shares held by the top holders
    signal:                str
    confidence:            float      # 0-100
    reasoning:             str

    @property
    def strength(self) -> int:
        return SIGNAL_STRENGTH[self.signal]


def _model_direction(p: float) -> Optional[str]:
    if p > 0.5:
        return "YES"
    if p < 0.5:
        return "NO"
    return None


def generate_investment_signal(
    ai_probability_a: float,
    smart_money_direction: str,
    whale_concentration: float,
    team_a: str,
    team_b: str,
) -> InvestmentSignal:
    if smart_money_direction not in SMART_MONEY_DIRECTIONS:
        raise ValueError(f"smart_money_direction must be one of {SMART_MONEY_DIRECTIONS}, "
                         f"got {smart_money_direction!r}")
    if not 0.0 <= ai_probability_a <= 1.0:
        raise ValueError(f"ai_probability_a must be in [0, 1], got {ai_probability_a!r}")

    strength = abs(ai_probability_a - 0.5) * 2
    direction = _model_direction(ai_probability_a)
    favored = team_a if direction == "YES" else team_b
    favored_p = ai_probability_a if direction == "YES" else 1.0 - ai_probability_a
    side = "A" if direction == "YES" else "B"

    consistent = direction is not None and direction == smart_money_direction
    conflict = (direction is not None and smart_money_direction != "NEUTRAL"
                and direction != smart_money_direction)

    signal, confidence = "NEUTRAL", 50.0
    reasoning = "Model and smart money are both balanced; likely a close game. Stay out or hedge."

    if consistent and strength > CONSISTENT_MIN_STRENGTH:
        tier = "STRONG" if strength > STRONG_STRENGTH else "MODERATE"
        signal = f"{tier}_BUY_{side}"
        confidence = 70 + strength * 30
        reasoning = (f"Model and smart money both favor {favored}; "
                     f"model win probability {favored_p:.1%}")

    elif conflict:
        signal, confidence = "CONFLICT_WARNING", 30.0
        if whale_concentration > HIGH_CONCENTRATION:
            reasoning = (f"Warning: model favors {favored} but the large holders are on the other "
                         f"side, and holdings are highly concentrated ({whale_concentration:.1f}%). "
                         f"Possible informed money or manipulation; stay out.")
        else:
            whale_side = team_a if smart_money_direction == "YES" else team_b
            reasoning = (f"Split: model favors {favored} while the large holders prefer "
                         f"{whale_side}. Trade small or wait.")

    elif smart_money_direction == "NEUTRAL":
        if strength > NEUTRAL_MIN_STRENGTH:
            signal = f"MODERATE_BUY_{side}"
            confidence = 55 + strength * 20
            reasoning = f"Holdings are spread out; following the model, which favors {favored}."

    elif strength < WEAK_MAX_STRENGTH:
        whale_side = "A" if smart_money_direction == "YES" else "B"
        whale_team = team_a if smart_money_direction == "YES" else team_b
        tier = "MODERATE" if whale_concentration > MODERATE_CONCENTRATION else "WEAK"
        signal = f"{tier}_BUY_{whale_side}"
        confidence = 55 + (whale_concentration / 100) * 20
        reasoning = (f"Model signal is weak but smart money clearly prefers {whale_team} "
                     f"(concentration {whale_concentration:.1f}%).")

    log.debug(f"{team_a} vs {team_b}: p={ai_probability_a:.3f} "
              f"smart={smart_money_direction} → {signal} ({confidence:.0f})")
    return InvestmentSignal(
        ai_probability_a=ai_probability_a,
        smart_money_direction=smart_money_direction,
        whale_concentration=whale_concentration,
        signal=signal,
        confidence=confidence,
        reasoning=reasoning,
    )
