from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from db.repositories import QuoteRepository
from services.quote_store import InMemoryQuoteStore, QuoteStore
from tests.helpers.time_utils import DEFAULT_TIME_GEN

# One shared connection so threads in a test see the same in-memory database.
engine: Engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session_factory() -> sessionmaker[Session]:
    return session_factory


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def _reset_default_time_gen() -> None:
    DEFAULT_TIME_GEN.reset()


@pytest.fixture(scope="function")
def memory_store() -> InMemoryQuoteStore:
    return InMemoryQuoteStore(clock=DEFAULT_TIME_GEN)


@pytest.fixture(scope="function")
def sql_store(test_session_factory: sessionmaker[Session]) -> QuoteRepository:
    return QuoteRepository(test_session_factory, clock=DEFAULT_TIME_GEN)


@pytest.fixture(scope="function", params=["memory", "sql"])
def store(request: pytest.FixtureRequest) -> QuoteStore:
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sql_store")
