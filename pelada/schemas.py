from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Optional, Literal


class StatLine(BaseModel):
    """One player's statistics for a single match (or the cumulative counters)."""
    goals: int = Field(default=0, ge=0)
    assists: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    tackles: int = Field(default=0, ge=0)
    fouls: int = Field(default=0, ge=0)


class PlayerStats(StatLine):
    model_config = ConfigDict(from_attributes=True)

    # Identity
    id: str
    name: str = ""
    games: int = Field(default=0, ge=0)

    # Context
    status: Optional[str] = "Ativo"
    rating: float = 5.0

    def per_game(self, stat: str) -> float:
        if self.games == 0:
            return 0.0
        return getattr(self, stat) / self.games


class Selection(BaseModel):
    """A leg on the in-progress slip, before anything is persisted."""
    match_id: int
    category: Literal['RESULTADO_PARTIDA', 'MERCADO_JOGADOR']
    detail: str
    odd: float = Field(gt=0)
    target_player_id: Optional[str] = None
    description: str = ""


class LegSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slip_id: int
    match_id: int
    category: str
    detail: str
    odd: float
    status: str = "PENDENTE"
    target_player_id: Optional[str] = None


class SlipSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    account_id: int
    stake: float
    total_odd: float
    status: str = "ABERTO"


class Outcome(BaseModel):
    """Tagged result: either ``value`` (ok) or an ``error`` kind with messages."""
    ok: bool
    value: Any = None
    error: Optional[str] = None
    detail: List[str] = Field(default_factory=list)

    @classmethod
    def success(cls, value: Any) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, *messages: str) -> "Outcome":
        return cls(ok=False, error=error, detail=list(messages))
