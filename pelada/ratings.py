import logging
import numpy as np
from typing import Dict, Iterable, List, Optional
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .database import Player, commit_row

logger = logging.getLogger(__name__)

# --- RATING CURVE ---
RATING_FLOOR = 5.0
RATING_CEILING = 10.0
RATING_AMPLITUDE = 5.0
RATING_INFLECTION = 5.0   # production/game that maps to 7.5
RATING_STEEPNESS = 0.5

# Production weights per action
ACTION_WEIGHTS = {
    'goals': 3.0,
    'assists': 2.0,
    'tackles': 0.5,
    'saves': 0.8,
    'fouls': -0.2,
}


def _round1(value: float) -> float:
    # half-up, not banker's rounding
    return float(np.floor(value * 10 + 0.5) / 10)


def production_score(player) -> float:
    return sum(getattr(player, stat) * w for stat, w in ACTION_WEIGHTS.items())


def calculate_rating(player) -> float:
    """
    Nota: logistic map of weighted production per game onto [5.0, 10.0].
    Accepts anything exposing the cumulative counters (ORM row or PlayerStats).
    """
    if player.games == 0:
        return RATING_FLOOR

    avg = production_score(player) / player.games
    rating = RATING_FLOOR + RATING_AMPLITUDE / (1 + np.exp(-RATING_STEEPNESS * (avg - RATING_INFLECTION)))
    return _round1(np.clip(rating, RATING_FLOOR, RATING_CEILING))


def position_scores(player) -> Dict[str, float]:
    """
    Goalkeeper / striker / holding-midfielder "purity" scores.
    Only the single-pass legacy lineup uses these.
    """
    if player.games == 0:
        return {'goleiro': 0.0, 'atacante': 0.0, 'volante': 0.0}

    g = player.games
    goalkeeper = (player.saves * 2.0 - player.fouls * 0.25 - player.goals * 0.5 - player.assists * 0.25) / g
    striker = (player.goals * 2.0 + player.assists * 1.0 - player.fouls * 0.25) / g
    holding = (player.goals * 0.5 + player.assists * 1.5 + player.tackles * 1.5 - player.fouls * 0.25) / g

    return {
        'goleiro': max(0.0, goalkeeper),
        'atacante': max(0.0, striker),
        'volante': max(0.0, holding),
    }


# --- RADAR (player profile page) ---
def _to_scale(per_game: float, benchmark: float) -> float:
    return min(99.0, (per_game / benchmark) * 80 + 20)


def radar_skills(player) -> Dict[str, int]:
    """Five profile attributes plus overall, each on a 20..99 scale."""
    if player.games == 0:
        return {k: 20 for k in ('finalizacao', 'criacao', 'defesa', 'fisico', 'disciplina', 'overall')}

    g = player.games
    defensive = (player.tackles * 0.5 + player.saves * 0.8) / g
    involvement = (player.goals + player.assists + player.tackles + player.saves + player.fouls) / g

    overall = round((calculate_rating(player) - RATING_FLOOR) / RATING_AMPLITUDE * 80 + 20)
    return {
        'finalizacao': round(_to_scale(player.goals / g, 3.0)),
        'criacao': round(_to_scale(player.assists / g, 3.0)),
        'defesa': round(_to_scale(defensive, 2.0)),
        'fisico': round(_to_scale(involvement, 6.0)),
        'disciplina': round(max(20.0, 99 - (player.fouls / g / 2.0) * 79)),
        'overall': int(max(20, min(99, overall))),
    }


class RatingRefreshReport(BaseModel):
    updated: Dict[str, float] = Field(default_factory=dict)
    failed: List[str] = Field(default_factory=list)


class RatingUpdater:
    """Recomputes and writes back the stored rating, one independent update per player."""

    def __init__(self, session: Session):
        self.session = session

    def refresh(self, player_ids: Optional[Iterable[str]] = None) -> RatingRefreshReport:
        query = self.session.query(Player)
        if player_ids is not None:
            query = query.filter(Player.id.in_(list(player_ids)))
        players = query.order_by(Player.id).all()

        report = RatingRefreshReport()
        for player in players:
            player_id = player.id
            new_rating = calculate_rating(player)
            if player.rating == new_rating:
                report.updated[player_id] = new_rating
                continue

            player.rating = new_rating
            if commit_row(self.session, f"rating for player {player_id}"):
                report.updated[player_id] = new_rating
            else:
                report.failed.append(player_id)

        logger.info(f"Ratings refreshed: {len(report.updated)} ok, {len(report.failed)} failed.")
        return report
