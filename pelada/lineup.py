"""
Balanced lineup ("escalação") generation.

The optimizer is an exact search: every role-feasible roster is enumerated and
the pair of disjoint rosters with the smallest imbalance cost wins. Squads are
small (tens of players), which is what keeps the C(n, k)^2 search tractable.
"""
import logging
import numpy as np
from itertools import combinations
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from pydantic import BaseModel, Field

from .config import settings
from .database import PLAYER_ACTIVE, PLAYER_INJURED
from .ratings import calculate_rating, position_scores
from .schemas import Outcome, PlayerStats

logger = logging.getLogger(__name__)

# Fixed priority order for the greedy role test: goalkeeper first
ROLE_APTITUDE = {
    'Goleiro': 'P_GOL',
    'Zagueiro': 'P_ZAG',
    'Lateral': 'P_LAT',
    'Volante': 'P_VOL',
    'Meia': 'P_MEI',
    'Ponta': 'P_PTA',
    'Atacante': 'P_ATK',
}
AVAILABLE_ROLES = list(ROLE_APTITUDE)
APTITUDE_ROLE = {v: k for k, v in ROLE_APTITUDE.items()}
APTITUDES = list(APTITUDE_ROLE)

# Imbalance cost weights
COST_WEIGHTS = np.array([1.5, 1.0, 1.0])  # rating, attack, defense

INVALID_INPUT = "INVALID_INPUT"
INSUFFICIENT_PLAYERS = "INSUFFICIENT_PLAYERS"
NO_FEASIBLE_ROSTER = "NO_FEASIBLE_ROSTER"
NO_FEASIBLE_PAIR = "NO_FEASIBLE_PAIR"


class ScoredPlayer(BaseModel):
    player: PlayerStats
    rating: float
    attack: float
    defense: float
    aptitudes: Dict[str, float]
    primary_aptitude: str
    assigned_role: Optional[str] = None

    @property
    def role(self) -> str:
        return self.assigned_role or APTITUDE_ROLE[self.primary_aptitude]


class Team(BaseModel):
    name: str
    players: List[ScoredPlayer]
    rating_total: float
    attack_total: float
    defense_total: float
    formation: str


class LineupResult(BaseModel):
    team_a: Team
    team_b: Team
    bench: List[PlayerStats] = Field(default_factory=list)
    imbalance_cost: float


# --- PLAYER PROFILES ---
def universal_scores(player) -> Tuple[float, float, float]:
    games = player.games or 1
    rating = calculate_rating(player)
    attack = player.goals / games * 3.0 + player.assists / games * 2.0
    defense = player.tackles / games * 0.5 + player.saves / games * 0.8
    return rating, attack, defense


def aptitude_scores(player) -> Dict[str, float]:
    g = player.games or 1
    fouls = player.fouls * 0.25
    return {
        'P_GOL': (player.saves * 2.0 - fouls) / g,
        'P_ZAG': (player.tackles * 2.0 + player.saves * 1.0 - fouls) / g,
        'P_LAT': (player.assists * 1.5 + player.tackles * 1.5 + player.goals * 0.5 - fouls) / g,
        'P_VOL': (player.tackles * 2.5 + player.assists * 1.0 - fouls) / g,
        'P_MEI': (player.goals * 1.0 + player.assists * 1.5 + player.tackles * 1.0 - fouls) / g,
        'P_PTA': (player.goals * 1.5 + player.assists * 2.0 - fouls) / g,
        'P_ATK': (player.goals * 2.5 + player.assists * 1.0 - fouls) / g,
    }


def primary_aptitude(aptitudes: Dict[str, float]) -> str:
    best, best_score = 'P_ATK', -np.inf
    for key in APTITUDES:
        if aptitudes[key] > best_score:
            best, best_score = key, aptitudes[key]
    return best


def score_player(player) -> ScoredPlayer:
    stats = player if isinstance(player, PlayerStats) else PlayerStats.model_validate(player)
    rating, attack, defense = universal_scores(stats)
    aptitudes = aptitude_scores(stats)
    return ScoredPlayer(
        player=stats,
        rating=rating,
        attack=attack,
        defense=defense,
        aptitudes=aptitudes,
        primary_aptitude=primary_aptitude(aptitudes),
    )


def formation(team: Iterable[ScoredPlayer]) -> str:
    counts = {}
    for p in team:
        counts[p.role] = counts.get(p.role, 0) + 1
    goalkeepers = counts.get('Goleiro', 0)
    defenders = counts.get('Zagueiro', 0) + counts.get('Lateral', 0)
    midfielders = counts.get('Volante', 0) + counts.get('Meia', 0) + counts.get('Ponta', 0)
    attackers = counts.get('Atacante', 0)
    return f"{goalkeepers}-{defenders}-{midfielders}-{attackers}"


# --- INPUT VALIDATION ---
def validate_lineup_inputs(total_players: int, team_size: int, required_roles: Dict[str, int],
                           double_lineup: bool = True) -> List[str]:
    """Returns user-facing messages; an empty list means the inputs are valid."""
    errors = []
    min_size, max_size = settings.MIN_TEAM_SIZE, settings.MAX_TEAM_SIZE

    if team_size < min_size:
        errors.append(f"Each team must have at least {min_size} players.")
    if team_size > max_size:
        errors.append(f"Each team cannot have more than {max_size} players.")

    if double_lineup:
        if total_players < 2 * min_size:
            errors.append(f"At least {2 * min_size} players are needed to build two lineups.")
        if team_size * 2 > total_players:
            errors.append("Not enough players to build two teams of this size.")
        max_per_team = min(max_size, total_players // 2)
        if team_size > max_per_team:
            errors.append(f"With {total_players} players each team can have at most {max_per_team} players.")
    elif team_size > total_players:
        errors.append("Not enough players to build a team of this size.")

    unknown = sorted(set(required_roles) - set(AVAILABLE_ROLES))
    if unknown:
        errors.append(f"Unknown roles: {', '.join(unknown)}.")
    if any(count < 0 for count in required_roles.values()):
        errors.append("Role counts cannot be negative.")
    if required_roles.get('Goleiro') != 1:
        errors.append("Each team must have exactly 1 goalkeeper.")
    if sum(required_roles.values()) > team_size:
        errors.append("The required roles cannot exceed the number of players per team.")

    return errors


# --- COMBINATORIAL SEARCH ---
def assign_roles(members: Tuple[int, ...], aptitudes: np.ndarray,
                 required_roles: Dict[str, int]) -> Optional[Dict[int, str]]:
    """
    Greedy role test: for each role in priority order take the best
    remaining members by that role's aptitude. Ties keep input order.
    None when a quota cannot be filled.
    """
    assignments = {}
    for role, aptitude in ROLE_APTITUDE.items():
        required = required_roles.get(role, 0)
        if required <= 0:
            continue
        column = APTITUDES.index(aptitude)
        unassigned = [i for i in members if i not in assignments]
        if len(unassigned) < required:
            return None
        ranked = sorted(unassigned, key=lambda i: -aptitudes[i, column])
        for i in ranked[:required]:
            assignments[i] = role
    return assignments


def iter_feasible_rosters(aptitudes: np.ndarray, team_size: int,
                          required_roles: Dict[str, int]) -> Iterator[Tuple[Tuple[int, ...], Dict[int, str]]]:
    """Lazily yields (member indices, role assignments) for every role-feasible roster."""
    for members in combinations(range(len(aptitudes)), team_size):
        assignments = assign_roles(members, aptitudes, required_roles)
        if assignments is not None:
            yield members, assignments


def _membership_words(rosters: np.ndarray, n_players: int) -> np.ndarray:
    """Packs each roster into uint64 bitmask words so disjointness is a vectorised AND."""
    n_words = (n_players + 63) // 64
    words = np.zeros((len(rosters), n_words), dtype=np.uint64)
    for col in range(rosters.shape[1]):
        idx = rosters[:, col]
        bits = np.left_shift(np.uint64(1), (idx % 64).astype(np.uint64))
        np.bitwise_or.at(words, (np.arange(len(rosters)), idx // 64), bits)
    return words


def _build_team(name: str, members: Iterable[int], assignments: Dict[int, str],
                scored: List[ScoredPlayer]) -> Team:
    players = [scored[i].model_copy(update={'assigned_role': assignments.get(i)}) for i in members]
    return Team(
        name=name,
        players=players,
        rating_total=sum(p.rating for p in players),
        attack_total=sum(p.attack for p in players),
        defense_total=sum(p.defense for p in players),
        formation=formation(players),
    )


def optimize_lineup(players: Iterable, team_size: int, required_roles: Dict[str, int]) -> Outcome:
    """
    Splits the pool into two rosters of ``team_size`` meeting the role quotas
    with the minimum imbalance cost. Returns Outcome(ok, value=LineupResult)
    or a failure tagged with the error kind.
    """
    pool = [p if isinstance(p, PlayerStats) else PlayerStats.model_validate(p) for p in players]
    injured = [p for p in pool if p.status == PLAYER_INJURED]
    eligible = [p for p in pool if p.status != PLAYER_INJURED]

    errors = validate_lineup_inputs(len(pool), team_size, required_roles, double_lineup=False)
    if errors:
        return Outcome.failure(INVALID_INPUT, *errors)
    if len(eligible) < team_size * 2:
        return Outcome.failure(INSUFFICIENT_PLAYERS, "Not enough available players to build two teams.")

    # Phase 1: player profiles
    scored = [score_player(p) for p in eligible]
    aptitudes = np.array([[s.aptitudes[a] for a in APTITUDES] for s in scored])
    universal = np.array([[s.rating, s.attack, s.defense] for s in scored])

    # Phase 2: every role-feasible roster (B's feasibility only depends on B's members)
    # materialised: the vectorised pair search compares each roster against all later ones
    rosters = [members for members, _ in iter_feasible_rosters(aptitudes, team_size, required_roles)]
    if not rosters:
        return Outcome.failure(NO_FEASIBLE_ROSTER, "No team can satisfy the required roles.")

    rosters = np.array(rosters, dtype=np.int64)
    totals = universal[rosters].sum(axis=1)
    words = _membership_words(rosters, len(scored))
    logger.info(f"Evaluating {len(rosters)} feasible rosters for team A...")

    # Phase 3: best disjoint pair. Pairs are symmetric, so B only ranges over
    # later rosters; the first minimum in enumeration order is kept.
    best_cost, best_pair = np.inf, None
    for a in range(len(rosters) - 1):
        if a % 1000 == 0:
            logger.debug(f"Processing roster {a + 1}/{len(rosters)}")
        later = slice(a + 1, None)
        disjoint = ~np.any(words[later] & words[a], axis=1)
        if not disjoint.any():
            continue
        candidates = np.nonzero(disjoint)[0] + a + 1
        costs = np.abs(totals[candidates] - totals[a]) @ COST_WEIGHTS
        i = int(np.argmin(costs))
        if costs[i] < best_cost:
            best_cost, best_pair = float(costs[i]), (a, int(candidates[i]))

    if best_pair is None:
        return Outcome.failure(NO_FEASIBLE_PAIR, "No valid combination of two teams was found.")

    # Phase 4: result
    members_a, members_b = (tuple(int(i) for i in rosters[k]) for k in best_pair)
    team_a = _build_team("Time A", members_a, assign_roles(members_a, aptitudes, required_roles), scored)
    team_b = _build_team("Time B", members_b, assign_roles(members_b, aptitudes, required_roles), scored)
    taken = set(members_a) | set(members_b)
    bench = [scored[i].player for i in range(len(scored)) if i not in taken] + injured

    logger.info(f"Lineup found: {team_a.formation} vs {team_b.formation}, cost {best_cost:.3f}")
    return Outcome.success(LineupResult(team_a=team_a, team_b=team_b, bench=bench, imbalance_cost=best_cost))


def imbalance_cost(team_a: Iterable[ScoredPlayer], team_b: Iterable[ScoredPlayer]) -> float:
    total_a = np.array([[p.rating, p.attack, p.defense] for p in team_a]).sum(axis=0)
    total_b = np.array([[p.rating, p.attack, p.defense] for p in team_b]).sum(axis=0)
    return float(np.abs(total_a - total_b) @ COST_WEIGHTS)


# --- LEGACY SINGLE-PASS GENERATOR ---
class LegacyLineup(BaseModel):
    team_a: List[PlayerStats]
    team_b: List[PlayerStats]
    bench: List[PlayerStats]


def legacy_lineup(players: Iterable) -> LegacyLineup:
    """
    Old quick split: two goalkeepers, four strikers and four holding
    midfielders picked by purity score, dealt alternately to each side.
    """
    pool = [p if isinstance(p, PlayerStats) else PlayerStats.model_validate(p) for p in players]
    active = sorted((p for p in pool if p.status == PLAYER_ACTIVE), key=calculate_rating, reverse=True)
    scores = {p.id: position_scores(p) for p in active}

    def pick(candidates, key, count):
        return sorted(candidates, key=lambda p: scores[p.id][key], reverse=True)[:count]

    goalkeepers = pick(active, 'goleiro', 2)
    picked = {p.id for p in goalkeepers}
    strikers = pick([p for p in active if p.id not in picked], 'atacante', 4)
    picked |= {p.id for p in strikers}
    holding = pick([p for p in active if p.id not in picked], 'volante', 4)
    picked |= {p.id for p in holding}

    team_a = goalkeepers[:1] + strikers[0:2] + holding[0:2]
    team_b = goalkeepers[1:2] + strikers[2:4] + holding[2:4]
    bench = [p for p in pool if p.id not in picked]
    return LegacyLineup(team_a=team_a, team_b=team_b, bench=bench)
