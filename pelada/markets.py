"""
Bet-detail token grammar shared by the conflict validator and settlement.

Player markets:  <STAT>_<MAIS|MENOS>_<line>_<playerId>   e.g. GOLS_MAIS_0.5_<uuid>
Match result:    VITORIA_A | VITORIA_B | EMPATE

The grammar is what the stored `bet_legs.detail` column holds, so it is kept
byte-compatible with existing rows.
"""
import math
from pydantic import BaseModel
from typing import Literal

OVER = "MAIS"
UNDER = "MENOS"

HOME_WIN = "VITORIA_A"
AWAY_WIN = "VITORIA_B"
DRAW = "EMPATE"
RESULT_TOKENS = (HOME_WIN, DRAW, AWAY_WIN)

# Token prefix -> StatLine attribute
STAT_FIELDS = {
    "GOLS": "goals",
    "ASSIST": "assists",
    "DESARMES": "tackles",
    "DEFESAS": "saves",
}

STAT_LABELS = {
    "GOLS": "Gols",
    "ASSIST": "Assistências",
    "DESARMES": "Desarmes",
    "DEFESAS": "Defesas",
}

RESULT_LABELS = {
    HOME_WIN: "Vitória Time A",
    AWAY_WIN: "Vitória Time B",
    DRAW: "Empate",
}


class InvalidBetToken(ValueError):
    pass


class PlayerMarket(BaseModel):
    stat: str
    direction: Literal['MAIS', 'MENOS']
    line: float
    player_id: str

    @property
    def field(self) -> str:
        return STAT_FIELDS[self.stat]

    @property
    def is_over(self) -> bool:
        return self.direction == OVER

    def holds(self, value: int) -> bool:
        if self.is_over:
            return value > self.line
        return value < self.line

    def integer_bounds(self) -> tuple:
        """Smallest and largest whole counts that win this leg (None = unbounded)."""
        if self.is_over:
            return math.floor(self.line) + 1, None
        return 0, math.ceil(self.line) - 1

    def token(self) -> str:
        return format_player_token(self.stat, self.direction, self.line, self.player_id)


def format_line(line: float) -> str:
    return str(float(line))


def format_player_token(stat: str, direction: str, line: float, player_id: str) -> str:
    return f"{stat}_{direction}_{format_line(line)}_{player_id}"


def parse_player_token(detail: str) -> PlayerMarket:
    # maxsplit keeps underscores inside the player id intact
    parts = detail.split("_", 3)
    if len(parts) != 4:
        raise InvalidBetToken(f"Malformed player market token: {detail!r}")
    stat, direction, line, player_id = parts
    if stat not in STAT_FIELDS:
        raise InvalidBetToken(f"Unknown statistic {stat!r} in {detail!r}")
    if direction not in (OVER, UNDER):
        raise InvalidBetToken(f"Unknown direction {direction!r} in {detail!r}")
    try:
        value = float(line)
    except ValueError:
        raise InvalidBetToken(f"Invalid line {line!r} in {detail!r}") from None
    if not math.isfinite(value) or value < 0 or not player_id:
        raise InvalidBetToken(f"Malformed player market token: {detail!r}")
    return PlayerMarket(stat=stat, direction=direction, line=value, player_id=player_id)


def parse_result_token(detail: str) -> str:
    if detail not in RESULT_TOKENS:
        raise InvalidBetToken(f"Unknown match result token: {detail!r}")
    return detail


def describe(detail: str) -> str:
    """Human readable label used by the CLI and conflict messages."""
    if detail in RESULT_LABELS:
        return RESULT_LABELS[detail]
    market = parse_player_token(detail)
    sign = "+" if market.is_over else "-"
    return f"{STAT_LABELS[market.stat]} {sign}{format_line(market.line)}"
