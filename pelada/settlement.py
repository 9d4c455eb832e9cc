import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .betting import combined_odd
from .database import (
    Account, BetLeg, BetSlip, Match, Player, commit_row,
    CATEGORY_MATCH_RESULT, CATEGORY_PLAYER_MARKET, MATCH_FINISHED,
    LEG_PENDING, LEG_WON, LEG_LOST, LEG_VOID,
    SLIP_OPEN, SLIP_WON, SLIP_LOST, SLIP_VOID,
)
from .markets import InvalidBetToken, HOME_WIN, AWAY_WIN, DRAW, parse_player_token
from .ratings import RatingUpdater
from .schemas import LegSnapshot, SlipSnapshot, StatLine

logger = logging.getLogger(__name__)

COUNTERS = ('goals', 'assists', 'saves', 'tackles', 'fouls')


class MatchNotFoundError(LookupError):
    pass


class MatchAlreadySettledError(RuntimeError):
    pass


class SlipResolution(BaseModel):
    slip_id: int
    account_id: int
    status: str
    total_odd: float
    payout: float


class SettlementReport(BaseModel):
    match_id: int
    final_score: str
    legs: Dict[int, str] = Field(default_factory=dict)
    slips: List[SlipResolution] = Field(default_factory=list)
    credits: Dict[int, float] = Field(default_factory=dict)
    failed_writes: List[str] = Field(default_factory=list)


# --- PURE RESOLUTION ---
def compute_score(team_a: Iterable[str], team_b: Iterable[str],
                  stat_lines: Dict[str, StatLine], absent: Set[str]) -> Tuple[int, int]:
    """Each side's goals, summed over its rostered players who were present."""
    def side(roster):
        return sum(stat_lines[pid].goals for pid in roster if pid in stat_lines and pid not in absent)
    return side(team_a or []), side(team_b or [])


def resolve_leg(category: str, detail: str, target_player_id: Optional[str], score: Tuple[int, int],
                stat_lines: Dict[str, StatLine], absent: Set[str]) -> str:
    if category == CATEGORY_MATCH_RESULT:
        goals_a, goals_b = score
        won = ((detail == HOME_WIN and goals_a > goals_b)
               or (detail == AWAY_WIN and goals_b > goals_a)
               or (detail == DRAW and goals_a == goals_b))
        return LEG_WON if won else LEG_LOST

    if category == CATEGORY_PLAYER_MARKET:
        try:
            market = parse_player_token(detail)
        except InvalidBetToken as e:
            logger.warning(f"Unrecognised player market, settled as lost: {e}")
            return LEG_LOST
        player_id = target_player_id or market.player_id
        # absence nullifies the bet whatever the stat says
        if player_id in absent:
            return LEG_VOID
        value = getattr(stat_lines.get(player_id, StatLine()), market.field)
        return LEG_WON if market.holds(value) else LEG_LOST

    logger.warning(f"Unrecognised bet category {category!r}, settled as lost.")
    return LEG_LOST


def resolve_slip(stake: float, legs: Iterable[Tuple[str, float]]) -> Optional[Tuple[str, float, float]]:
    """
    (status, recomputed odd, payout) for a slip given (status, odd) of every
    leg. None while any leg is still pending on another match.
    """
    legs = list(legs)
    statuses = [status for status, _ in legs]
    if LEG_PENDING in statuses:
        return None

    if all(status == LEG_VOID for status in statuses):
        return SLIP_VOID, 1.0, stake

    # VOID legs contribute nothing; LOST legs drop out of the displayed odd
    odd = combined_odd(o for status, o in legs if status == LEG_WON)
    if all(status in (LEG_WON, LEG_VOID) for status in statuses):
        return SLIP_WON, odd, stake * odd
    return SLIP_LOST, odd, 0.0


# --- PERSISTENCE ---
class SettlementEngine:
    def __init__(self, session: Session):
        self.session = session

    def settle_match(self, match_id: int, stat_lines: Dict[str, StatLine],
                     absent: Iterable[str] = ()) -> SettlementReport:
        """
        Finalizes a match: claims it (once only), adds the submitted stats to
        the players, settles every pending leg and the slips they belong to,
        credits winners/refunds and re-rates the players involved.
        Each row write is independent; failures are logged and reported.
        """
        absent = set(absent)
        match = self.session.get(Match, match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")

        team_a = list(match.team_a_players or [])
        team_b = list(match.team_b_players or [])
        score = compute_score(team_a, team_b, stat_lines, absent)
        final_score = f"{score[0]}-{score[1]}"
        logger.info(f"Settling match {match_id} ({match.team_a_name} x {match.team_b_name}): {final_score}")

        self._claim(match_id, final_score)
        report = SettlementReport(match_id=match_id, final_score=final_score)

        touched = self._apply_stats(team_a + team_b, stat_lines, absent, report)
        slip_ids = self._settle_legs(match_id, score, stat_lines, absent, report)
        self._settle_slips(slip_ids, report)

        ratings = RatingUpdater(self.session).refresh(touched)
        report.failed_writes.extend(f"rating:{pid}" for pid in ratings.failed)

        logger.info(f"Match {match_id} settled: {len(report.legs)} legs, {len(report.slips)} slips, "
                    f"{len(report.failed_writes)} failed writes.")
        return report

    def _claim(self, match_id: int, final_score: str):
        # conditional update: only one run can move the match to FINALIZADA
        claimed = (
            self.session.query(Match)
            .filter(Match.id == match_id, Match.status != MATCH_FINISHED)
            .update({Match.status: MATCH_FINISHED, Match.final_score: final_score},
                    synchronize_session=False)
        )
        self.session.commit()
        if claimed != 1:
            raise MatchAlreadySettledError(f"Match {match_id} has already been settled")
        self.session.expire_all()

    def _apply_stats(self, rostered: List[str], stat_lines: Dict[str, StatLine],
                     absent: Set[str], report: SettlementReport) -> List[str]:
        touched = []
        for player_id in sorted(set(rostered) | set(stat_lines)):
            if player_id in absent:
                if player_id in stat_lines:
                    logger.warning(f"Ignoring stats submitted for absent player {player_id}")
                continue
            player = self.session.get(Player, player_id)
            if player is None:
                logger.warning(f"Player {player_id} not found, stats skipped.")
                continue

            line = stat_lines.get(player_id, StatLine())
            for counter in COUNTERS:
                setattr(player, counter, (getattr(player, counter) or 0) + getattr(line, counter))
            if player_id in rostered:
                player.games = (player.games or 0) + 1

            if commit_row(self.session, f"stats for player {player_id}"):
                touched.append(player_id)
            else:
                report.failed_writes.append(f"player:{player_id}")
        return touched

    def _settle_legs(self, match_id: int, score: Tuple[int, int], stat_lines: Dict[str, StatLine],
                     absent: Set[str], report: SettlementReport) -> List[int]:
        legs = (
            self.session.query(BetLeg)
            .filter(BetLeg.match_id == match_id, BetLeg.status == LEG_PENDING)
            .order_by(BetLeg.id)
            .all()
        )
        logger.info(f"{len(legs)} pending legs for match {match_id}")

        slip_ids = []
        for leg in legs:
            # detached copy: a failed commit expires the row's attributes
            snapshot = LegSnapshot.model_validate(leg)
            status = resolve_leg(snapshot.category, snapshot.detail, snapshot.target_player_id,
                                 score, stat_lines, absent)
            leg.status = status
            if commit_row(self.session, f"leg {snapshot.id}"):
                report.legs[snapshot.id] = status
            else:
                report.failed_writes.append(f"leg:{snapshot.id}")
            if snapshot.slip_id not in slip_ids:
                slip_ids.append(snapshot.slip_id)
        return slip_ids

    def _settle_slips(self, slip_ids: List[int], report: SettlementReport):
        for slip_id in slip_ids:
            row = self.session.get(BetSlip, slip_id)
            if row is None or row.status != SLIP_OPEN:
                continue
            slip = SlipSnapshot.model_validate(row)

            # statuses as stored: a leg whose write failed is still pending
            legs = [LegSnapshot.model_validate(leg)
                    for leg in self.session.query(BetLeg).filter(BetLeg.slip_id == slip_id).order_by(BetLeg.id)]
            resolved = resolve_slip(slip.stake, [(leg.status, leg.odd) for leg in legs])
            if resolved is None:
                logger.info(f"Slip {slip_id} still has pending legs")
                continue
            status, odd, payout = resolved
            account_id = slip.account_id

            # only an open slip may be finalized, so a payout is made at most once
            try:
                updated = (
                    self.session.query(BetSlip)
                    .filter(BetSlip.id == slip_id, BetSlip.status == SLIP_OPEN)
                    .update({BetSlip.status: status, BetSlip.total_odd: odd}, synchronize_session=False)
                )
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.error(f"Failed to write slip {slip_id}: {e}")
                report.failed_writes.append(f"slip:{slip_id}")
                continue
            if not updated:
                logger.warning(f"Slip {slip_id} was finalized by another run, skipped.")
                continue

            report.slips.append(SlipResolution(slip_id=slip_id, account_id=account_id,
                                               status=status, total_odd=odd, payout=payout))
            if payout > 0:
                self._credit(account_id, payout, report)

    def _credit(self, account_id: int, amount: float, report: SettlementReport):
        try:
            self.session.query(Account).filter(Account.id == account_id).update(
                {Account.balance: Account.balance + amount}, synchronize_session=False
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to credit {amount:.2f} to account {account_id}: {e}")
            report.failed_writes.append(f"account:{account_id}")
            return
        report.credits[account_id] = report.credits.get(account_id, 0.0) + amount
        logger.info(f"Credited {amount:.2f} to account {account_id}")
