"""Shared pytest fixtures for the pelada tests."""
import sys
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pelada.database import Base, Account, Player  # noqa: E402
from pelada.schemas import PlayerStats  # noqa: E402


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_stats():
    """Factory for PlayerStats value objects."""
    def _make(player_id, games=10, goals=0, assists=0, saves=0, tackles=0, fouls=0,
              status="Ativo", name=None):
        return PlayerStats(
            id=player_id,
            name=name or player_id,
            games=games,
            goals=goals,
            assists=assists,
            saves=saves,
            tackles=tackles,
            fouls=fouls,
            status=status,
        )
    return _make


@pytest.fixture
def add_player(db_session):
    """Factory that persists a Player row."""
    def _add(player_id, **counters):
        player = Player(id=player_id, name=counters.pop("name", player_id), **counters)
        db_session.add(player)
        db_session.commit()
        return player
    return _add


@pytest.fixture
def add_account(db_session):
    def _add(name="bettor", balance=1000.0):
        account = Account(name=name, balance=balance)
        db_session.add(account)
        db_session.commit()
        return account
    return _add
