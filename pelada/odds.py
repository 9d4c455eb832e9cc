import math
import logging
import numpy as np
from scipy.stats import poisson
from typing import Dict, Iterable, List, Optional
from pydantic import BaseModel

from .config import settings
from .markets import OVER, UNDER, STAT_FIELDS, HOME_WIN, DRAW, AWAY_WIN, format_player_token

logger = logging.getLogger(__name__)

# Base draw share for two evenly rated teams; shrinks as the rating gap grows
DRAW_BASE = 0.25


# --- POISSON PLAYER MARKETS ---
def poisson_pmf(k: int, lam: float) -> float:
    """P(X=k) for a Poisson rate ``lam``."""
    if lam == 0:
        return 1.0 if k == 0 else 0.0
    return float(poisson.pmf(k, lam))


def poisson_over(threshold: int, lam: float) -> float:
    """P(X >= threshold)."""
    if threshold <= 0:
        return 1.0
    if lam == 0:
        return 0.0
    # survival function at threshold - 1 is P(X > threshold - 1)
    return float(np.clip(poisson.sf(threshold - 1, lam), 0.0, 1.0))


def poisson_under(threshold: int, lam: float) -> float:
    """P(X < threshold)."""
    return 1.0 - poisson_over(threshold, lam)


def probability_to_odds(probability: float, cap: Optional[float] = None,
                        blocked_above: Optional[float] = None) -> Optional[float]:
    """
    Fair decimal odd, no house margin. None means a blocked market
    (impossible outcome or an odd beyond the blocked threshold).
    """
    cap = settings.POISSON_ODDS_CAP if cap is None else cap
    blocked_above = settings.BLOCKED_ODDS_THRESHOLD if blocked_above is None else blocked_above

    if probability <= 0 or probability > 1:
        return None
    odd = min(1.0 / probability, cap)
    if odd > blocked_above:
        return None
    return odd


def player_lambda(player, stat_field: str) -> float:
    if player.games == 0:
        return 0.0
    return getattr(player, stat_field) / player.games


def line_to_count(line: float) -> int:
    # "over 1.5" needs at least 2 events
    return math.floor(line) + 1


def player_market_odds(player, lines: Optional[Iterable[float]] = None) -> Dict[str, Dict[float, Dict[str, Optional[float]]]]:
    """{stat: {line: {'MAIS': odd, 'MENOS': odd}}} for every player market."""
    lines = list(settings.MARKET_LINES if lines is None else lines)
    markets = {}
    for stat, stat_field in STAT_FIELDS.items():
        lam = player_lambda(player, stat_field)
        markets[stat] = {}
        for line in lines:
            count = line_to_count(line)
            markets[stat][line] = {
                OVER: probability_to_odds(poisson_over(count, lam)),
                UNDER: probability_to_odds(poisson_under(count, lam)),
            }
    return markets


# --- MATCH RESULT ODDS ---
def match_result_odds(team_a_ratings: Iterable[float], team_b_ratings: Iterable[float],
                      margin: Optional[float] = None, min_odd: Optional[float] = None) -> Dict[str, float]:
    """
    Win/draw/win odds from summed roster ratings. Linear share for the two
    wins, a draw term that shrinks with the rating gap, then the house margin
    and the minimum odd.
    """
    margin = settings.HOUSE_MARGIN if margin is None else margin
    min_odd = settings.MIN_ODD if min_odd is None else min_odd

    strength_a = float(sum(team_a_ratings))
    strength_b = float(sum(team_b_ratings))
    total = strength_a + strength_b
    if total <= 0:
        share_a = share_b = 0.5
    else:
        share_a = strength_a / total
        share_b = strength_b / total

    draw = DRAW_BASE * (1 - abs(share_a - share_b))
    probs = np.array([share_a, draw, share_b])
    probs = probs / probs.sum()

    with_margin = probs / (1 + margin)
    odds = np.maximum(min_odd, 1.0 / with_margin)
    return {
        HOME_WIN: round(float(odds[0]), 2),
        DRAW: round(float(odds[1]), 2),
        AWAY_WIN: round(float(odds[2]), 2),
    }


class MarketQuote(BaseModel):
    player_id: str
    player_name: str
    stat: str
    direction: str
    line: float
    odd: Optional[float]

    @property
    def blocked(self) -> bool:
        return self.odd is None

    @property
    def detail(self) -> str:
        return format_player_token(self.stat, self.direction, self.line, self.player_id)


class OddsBoard(BaseModel):
    match_id: int
    result: Dict[str, float]
    player_markets: List[MarketQuote]


def build_odds_board(match, players_by_id: Dict[str, object], lines: Optional[Iterable[float]] = None) -> OddsBoard:
    """Result odds plus every over/under quote for the players rostered on a match."""
    lines = list(settings.MARKET_LINES if lines is None else lines)
    roster_a = [players_by_id[pid] for pid in (match.team_a_players or []) if pid in players_by_id]
    roster_b = [players_by_id[pid] for pid in (match.team_b_players or []) if pid in players_by_id]

    missing = len(match.team_a_players or []) + len(match.team_b_players or []) - len(roster_a) - len(roster_b)
    if missing:
        logger.warning(f"Match {match.id}: {missing} rostered players not found, skipped on the board.")

    quotes = []
    for player in roster_a + roster_b:
        for stat, by_line in player_market_odds(player, lines).items():
            for line, by_direction in by_line.items():
                for direction, odd in by_direction.items():
                    quotes.append(MarketQuote(
                        player_id=player.id,
                        player_name=player.name,
                        stat=stat,
                        direction=direction,
                        line=line,
                        odd=odd,
                    ))

    return OddsBoard(
        match_id=match.id,
        result=match_result_odds([p.rating for p in roster_a], [p.rating for p in roster_b]),
        player_markets=quotes,
    )
