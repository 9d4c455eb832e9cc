import logging
from sqlalchemy import create_engine, Column, Integer, String, Float, DateTime, ForeignKey, JSON
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session
from datetime import datetime
from pathlib import Path
from .config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# --- ENUM VALUES (stored as plain strings, same values as the hosted schema) ---
PLAYER_ACTIVE = "Ativo"
PLAYER_INJURED = "Lesionado"

MATCH_SCHEDULED = "AGENDADA"
MATCH_LIVE = "AO_VIVO"
MATCH_FINISHED = "FINALIZADA"
MATCH_POSTPONED = "ADIADA"

SLIP_OPEN = "ABERTO"
SLIP_WON = "GANHO"
SLIP_LOST = "PERDIDO"
SLIP_VOID = "ANULADO"

SLIP_SINGLE = "SIMPLES"
SLIP_PARLAY = "MULTIPLA"

LEG_PENDING = "PENDENTE"
LEG_WON = "GANHA"
LEG_LOST = "PERDIDA"
LEG_VOID = "ANULADA"

CATEGORY_MATCH_RESULT = "RESULTADO_PARTIDA"
CATEGORY_PLAYER_MARKET = "MERCADO_JOGADOR"

# --- HELPER FUNCTIONS ---
_engine = None
_SessionLocal = None


def get_engine():
    global _engine
    if _engine is None:
        if settings.DATABASE_URL.startswith("sqlite:///"):
            # create the data/ directory for the default file-backed database
            db_path = settings.DATABASE_URL[len("sqlite:///"):]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(settings.DATABASE_URL)
    return _engine


def get_session() -> Session:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine())
    return _SessionLocal()


def init_db(engine=None):
    Base.metadata.create_all(engine or get_engine())


def commit_row(session: Session, what: str) -> bool:
    """
    Commits a single-row write. Batches (rating write-back, settlement) call
    this per row so one failure is logged and rolled back without aborting
    the rows that follow.
    """
    try:
        session.commit()
        return True
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to write {what}: {e}")
        return False

# --- MODELS ---

class Account(Base):
    __tablename__ = 'accounts'
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    role = Column(String, default="USER")
    balance = Column(Float, default=lambda: settings.STARTING_BALANCE)

    slips = relationship("BetSlip", back_populates="account")


class Player(Base):
    __tablename__ = 'players'
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)

    # Cumulative counters
    games = Column(Integer, default=0)
    goals = Column(Integer, default=0)
    assists = Column(Integer, default=0)
    saves = Column(Integer, default=0)
    tackles = Column(Integer, default=0)
    fouls = Column(Integer, default=0)

    # Derived, overwritten after every settled match
    rating = Column(Float, default=5.0)
    status = Column(String, default=PLAYER_ACTIVE)

    account_id = Column(Integer, ForeignKey('accounts.id'), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Match(Base):
    __tablename__ = 'matches'
    id = Column(Integer, primary_key=True, autoincrement=True)
    team_a_name = Column(String, nullable=False)
    team_b_name = Column(String, nullable=False)
    scheduled_at = Column(DateTime, index=True)
    status = Column(String, default=MATCH_SCHEDULED, index=True)

    # Roster id arrays, assigned at creation
    team_a_players = Column(JSON, default=list)
    team_b_players = Column(JSON, default=list)

    # Settlement Fields
    final_score = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    legs = relationship("BetLeg", back_populates="match")


class BetSlip(Base):
    __tablename__ = 'bet_slips'
    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey('accounts.id'), index=True)
    placed_at = Column(DateTime, default=datetime.utcnow)
    stake = Column(Float, nullable=False)
    total_odd = Column(Float, nullable=False)
    slip_type = Column(String, nullable=False)
    status = Column(String, default=SLIP_OPEN, index=True)

    account = relationship("Account", back_populates="slips")
    legs = relationship("BetLeg", back_populates="slip", cascade="all, delete-orphan")


class BetLeg(Base):
    __tablename__ = 'bet_legs'
    id = Column(Integer, primary_key=True, autoincrement=True)
    slip_id = Column(Integer, ForeignKey('bet_slips.id'), index=True)
    match_id = Column(Integer, ForeignKey('matches.id'), index=True)
    category = Column(String, nullable=False)
    detail = Column(String, nullable=False)
    target_player_id = Column(String, ForeignKey('players.id'), nullable=True)
    odd = Column(Float, nullable=False)
    status = Column(String, default=LEG_PENDING, index=True)

    slip = relationship("BetSlip", back_populates="legs")
    match = relationship("Match", back_populates="legs")
