import asyncio
from collections.abc import Iterator
from contextlib import contextmanager
import inspect
import os
from pathlib import Path
import sys
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import Engine, Table
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SYNCBOARD_DISABLE_WORKERS", "true")

from syncboard.config import override_runtime_env  # noqa: E402
from syncboard.db import build_engine, reset_engine_for_tests  # noqa: E402
from syncboard.schema import metadata  # noqa: E402


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


@pytest.fixture(autouse=True)
def _test_environment(tmp_path: Path) -> Iterator[None]:
    os.environ["SYNCBOARD_DATABASE_URL"] = f"sqlite:///{tmp_path / 'default.db'}"
    override_runtime_env(None)
    reset_engine_for_tests()
    try:
        yield
    finally:
        reset_engine_for_tests()
        override_runtime_env(None)
        os.environ.pop("SYNCBOARD_DATABASE_URL", None)


class SwitchableSessionFactory:
    """Session factory whose database can be taken offline by a test."""

    def __init__(self, engine: Engine) -> None:
        self._factory = sessionmaker(bind=engine, expire_on_commit=False)
        self.offline = False

    @contextmanager
    def __call__(self) -> Iterator[Session]:
        if self.offline:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))
        session = self._factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class FakeRedis:
    """Minimal asyncio Redis double supporting the calls the progress cache uses."""

    def __init__(self) -> None:
        self.store: dict[str, Any] = {}
        self.offline = False
        self.closed = False

    def _check(self) -> None:
        if self.offline:
            raise RedisConnectionError("redis unavailable")

    async def ping(self) -> bool:
        self._check()
        return True

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        self._check()
        prefix = (match or "*").rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key

    async def mget(self, keys: list[str]) -> list[Any]:
        self._check()
        return [self.store.get(key) for key in keys]

    async def aclose(self) -> None:
        self.closed = True


def insert_rows(engine: Engine, table: Table, *rows: dict[str, Any]) -> None:
    with engine.begin() as connection:
        connection.execute(table.insert(), list(rows))


@pytest.fixture()
def db_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = build_engine(f"sqlite:///{tmp_path / 'facts.db'}")
    metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def empty_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine: Engine) -> SwitchableSessionFactory:
    return SwitchableSessionFactory(db_engine)


@pytest.fixture()
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture()
def insert(db_engine: Engine):
    def _insert(table: Table, *rows: dict[str, Any]) -> None:
        insert_rows(db_engine, table, *rows)

    return _insert
