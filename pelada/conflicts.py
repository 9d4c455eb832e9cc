import logging
from typing import Dict, List, Optional
from pydantic import BaseModel

from .database import CATEGORY_MATCH_RESULT, CATEGORY_PLAYER_MARKET
from .markets import InvalidBetToken, PlayerMarket, STAT_LABELS, describe, parse_player_token
from .schemas import Selection

logger = logging.getLogger(__name__)

MATCH_RESULT = "MATCH_RESULT"
SAME_TYPE = "SAME_TYPE"
REDUNDANT_BET = "REDUNDANT_BET"
CONTRADICTORY_OVER_UNDER = "CONTRADICTORY_OVER_UNDER"

REPLACE = "replace"
CANCEL = "cancel"
KEEP_EXISTING = "keep_existing"


class ConflictResult(BaseModel):
    has_conflict: bool = False
    kind: Optional[str] = None
    message: Optional[str] = None
    existing: Optional[Selection] = None


NO_CONFLICT = ConflictResult()


def _compare_markets(new: PlayerMarket, old: PlayerMarket) -> Optional[str]:
    """Conflict kind between two legs on the same player and statistic, if any."""
    if new.direction == old.direction:
        # over: a higher line is more specific; under: a lower one is
        if new.is_over:
            more_specific = new.line > old.line
        else:
            more_specific = new.line < old.line
        return SAME_TYPE if more_specific else REDUNDANT_BET

    over, under = (new, old) if new.is_over else (old, new)
    lowest, _ = over.integer_bounds()
    _, highest = under.integer_bounds()
    if highest < lowest:
        return CONTRADICTORY_OVER_UNDER
    # at least one whole count satisfies both legs: a valid range bet
    return None


def _message(kind: str, new: Selection, existing: Selection) -> str:
    if kind == MATCH_RESULT:
        return (f"You already have a bet on this match result ({describe(existing.detail)}). "
                f"Replace it?")
    stat = STAT_LABELS[parse_player_token(new.detail).stat]
    if kind == SAME_TYPE:
        return (f"You already have a {stat} bet for this player ({describe(existing.detail)}). "
                f"{describe(new.detail)} is more specific. Replace it?")
    if kind == REDUNDANT_BET:
        return (f"{describe(new.detail)} is already covered by your bet "
                f"{describe(existing.detail)} for this player.")
    return (f"{describe(new.detail)} and {describe(existing.detail)} cannot both win "
            f"for this player.")


def validate_bet_conflicts(new: Selection, existing: List[Selection]) -> ConflictResult:
    """
    Advisory check run before a leg is added to the in-progress slip.
    Returns the first conflict found against the legs already on it.
    """
    if new.category == CATEGORY_MATCH_RESULT:
        for leg in existing:
            if leg.category == CATEGORY_MATCH_RESULT and leg.match_id == new.match_id:
                return ConflictResult(has_conflict=True, kind=MATCH_RESULT,
                                      message=_message(MATCH_RESULT, new, leg), existing=leg)
        return NO_CONFLICT

    if new.category != CATEGORY_PLAYER_MARKET:
        return NO_CONFLICT

    market = parse_player_token(new.detail)
    player_id = new.target_player_id or market.player_id

    for leg in existing:
        if leg.category != CATEGORY_PLAYER_MARKET or leg.match_id != new.match_id:
            continue
        try:
            other = parse_player_token(leg.detail)
        except InvalidBetToken as e:
            logger.warning(f"Skipping malformed leg on slip: {e}")
            continue
        if (leg.target_player_id or other.player_id) != player_id or other.stat != market.stat:
            continue

        kind = _compare_markets(market, other)
        if kind:
            return ConflictResult(has_conflict=True, kind=kind,
                                  message=_message(kind, new, leg), existing=leg)

    return NO_CONFLICT


def resolution_options(kind: str) -> Dict[str, str]:
    if kind == MATCH_RESULT:
        return {
            REPLACE: "Replace the match result bet",
            CANCEL: "Cancel the new bet",
            'message': "Only one bet on the match result is allowed.",
        }
    if kind == SAME_TYPE:
        return {
            REPLACE: "Replace the existing bet",
            CANCEL: "Cancel the new bet",
            'message': "The new bet is more specific than one already on the slip.",
        }
    if kind == REDUNDANT_BET:
        return {
            KEEP_EXISTING: "Keep the existing bet",
            CANCEL: "Cancel the new bet",
            'message': "The new bet is already implied by one on the slip.",
        }
    if kind == CONTRADICTORY_OVER_UNDER:
        return {
            REPLACE: "Replace the existing bet",
            CANCEL: "Cancel the new bet",
            'message': "Over and under lines that cannot both win.",
        }
    return {
        REPLACE: "Replace",
        CANCEL: "Cancel",
        'message': "Conflict detected between bets.",
    }


def apply_resolution(selections: List[Selection], new: Selection,
                     conflict: ConflictResult, choice: str) -> List[Selection]:
    """Returns the slip after the user's choice; the input list is not modified."""
    if not conflict.has_conflict:
        return selections + [new]
    if choice == 'message' or choice not in resolution_options(conflict.kind):
        raise ValueError(f"Option {choice!r} is not offered for {conflict.kind}")
    if choice == REPLACE:
        return [s for s in selections if s != conflict.existing] + [new]
    # cancel / keep existing: the new leg is dropped
    return list(selections)
