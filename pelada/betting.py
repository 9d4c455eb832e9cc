import logging
import numpy as np
from typing import Iterable, List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import Account, BetSlip, BetLeg, SLIP_SINGLE, SLIP_PARLAY, SLIP_OPEN, LEG_PENDING
from .schemas import Selection

logger = logging.getLogger(__name__)


class BetPlacementError(ValueError):
    pass


def combined_odd(odds: Iterable[float]) -> float:
    """Product of leg odds; an empty product is 1.0."""
    odds = list(odds)
    return float(np.prod(odds)) if odds else 1.0


def slip_type(leg_count: int) -> str:
    return SLIP_PARLAY if leg_count > 1 else SLIP_SINGLE


def place_slip(session: Session, account_id: int, selections: List[Selection], stake: float) -> BetSlip:
    """
    Creates the slip with all its legs and debits the stake in one commit.
    """
    if not selections:
        raise BetPlacementError("Add at least one selection to the slip.")
    if stake is None or stake <= 0:
        raise BetPlacementError("Enter a valid stake.")

    account = session.get(Account, account_id)
    if account is None:
        raise BetPlacementError(f"Unknown account {account_id}.")
    if stake > (account.balance or 0):
        raise BetPlacementError("Insufficient balance.")

    slip = BetSlip(
        account_id=account_id,
        stake=stake,
        total_odd=combined_odd(s.odd for s in selections),
        slip_type=slip_type(len(selections)),
        status=SLIP_OPEN,
    )
    slip.legs = [
        BetLeg(
            match_id=s.match_id,
            category=s.category,
            detail=s.detail,
            target_player_id=s.target_player_id,
            odd=s.odd,
            status=LEG_PENDING,
        )
        for s in selections
    ]
    account.balance = (account.balance or 0) - stake

    try:
        session.add(slip)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to place slip for account {account_id}: {e}")
        raise

    logger.info(f"Slip {slip.id} placed: {slip.slip_type}, stake {stake:.2f} @ {slip.total_odd:.2f}")
    return slip
