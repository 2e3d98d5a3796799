import pytest
from sqlalchemy.orm import sessionmaker

import app.models  # noqa: F401
from app import directory
from app.auth import Principal
from app.db import Base, make_engine


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'guesthouse.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def actor():
    return Principal(name="system", roles=frozenset({"admin"}), via="system")


@pytest.fixture
def guest(db, actor):
    return directory.create_guest(db, actor, "Abebe Kebede", "+251911000000")


@pytest.fixture
def room(db, actor):
    return directory.create_room(db, actor, "101", "Double", 1000)
