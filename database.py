"""SQLAlchemy-powered schema bootstrap for the cities database."""

from __future__ import annotations

import errno
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from sqlalchemy import URL, Connection, Engine, Integer, String, Table, create_engine, inspect
from sqlalchemy.exc import ResourceClosedError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

DB_PATH_ENV = "CITIES_DB_PATH"
DEFAULT_DB_PATH = Path(__file__).with_name("cities.db")


class AlreadyExistsError(FileExistsError):
    """Raised when the target path for a new database is already taken."""

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        super().__init__(errno.EEXIST, "database already exists", str(self.path))


# --------------------------------------------------------------------------------------
# Schema
# --------------------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Declarative base for the cities schema."""


class Country(Base):
    __tablename__ = "countries"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    iso: Mapped[Optional[str]] = mapped_column(String(2), index=True)


class City(Base):
    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Logical reference to countries.id; no foreign key is declared.
    country: Mapped[Optional[str]] = mapped_column(String, index=True)
    population: Mapped[Optional[int]] = mapped_column(Integer, index=True)


class CityLabel(Base):
    """Localized name of a city, one per language."""

    __tablename__ = "cities_labels"

    city: Mapped[str] = mapped_column(String, primary_key=True)
    lang: Mapped[str] = mapped_column(String, primary_key=True)
    label: Mapped[Optional[str]] = mapped_column(String, index=True)


# Tables are created in this order.
SCHEMA_TABLES: tuple[Table, ...] = (
    Country.__table__,
    City.__table__,
    CityLabel.__table__,
)


# --------------------------------------------------------------------------------------
# Handle
# --------------------------------------------------------------------------------------


class Database:
    """Open handle on a cities database file.

    The caller owns the handle and is responsible for calling ``close()``
    (or using it as a context manager) once done with it.
    """

    def __init__(self, path: PathLike, engine: Engine) -> None:
        self.path = Path(path)
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Database {str(self.path)!r} ({state})>"

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResourceClosedError(f"database handle for {self.path} is closed")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        self._ensure_open()
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def connect(self) -> Connection:
        self._ensure_open()
        return self.engine.connect()

    def table_names(self) -> list[str]:
        """Return the user tables present in the database file."""

        self._ensure_open()
        return sorted(inspect(self.engine).get_table_names())

    def close(self) -> None:
        if self._closed:
            return
        self.engine.dispose()
        self._closed = True


# --------------------------------------------------------------------------------------
# Initialization
# --------------------------------------------------------------------------------------


def default_db_path() -> Path:
    """Database location from the environment, falling back to the module folder."""

    env_path = os.getenv(DB_PATH_ENV)
    if env_path and env_path.strip():
        return Path(env_path.strip())
    return DEFAULT_DB_PATH


def _make_engine(path: Path) -> Engine:
    # Built from parts so "?", "#" and "%xx" in file names stay literal.
    return create_engine(
        URL.create("sqlite", database=str(path)),
        future=True,
        connect_args={"check_same_thread": False},
    )


def _claim_path(path: Path) -> None:
    """Atomically create an empty file at ``path``; fail if anything is there."""

    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        raise AlreadyExistsError(path) from None
    os.close(fd)


def _create_table(connection: Connection, table: Table) -> None:
    logger.debug("Creating table %s", table.name)
    table.create(connection)


def create_database(path: PathLike) -> Database:
    """Create a new database at ``path`` with the cities schema and return a handle.

    Raises ``AlreadyExistsError`` without touching anything when ``path``
    already exists. Any other failure removes the partially created file
    before the original error propagates.
    """

    db_path = Path(path)
    _claim_path(db_path)
    logger.debug("Claimed %s for a new database", db_path)

    engine = _make_engine(db_path)
    try:
        with engine.begin() as connection:
            for table in SCHEMA_TABLES:
                _create_table(connection, table)
    except BaseException:
        engine.dispose()
        logger.warning("Schema creation failed; removing partial database at %s", db_path)
        db_path.unlink(missing_ok=True)
        raise

    logger.info("Created database at %s", db_path)
    return Database(db_path, engine)


def open_database(path: PathLike) -> Database:
    """Open a handle on an existing database file without altering it."""

    db_path = Path(path)
    if not db_path.is_file():
        raise FileNotFoundError(errno.ENOENT, "database not found", str(db_path))
    return Database(db_path, _make_engine(db_path))
