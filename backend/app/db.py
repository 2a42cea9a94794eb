from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings


def _ensure_sqlite_path(url: str) -> None:
    if not url.startswith("sqlite"):
        return

    parsed = make_url(url)
    database = parsed.database
    if not database or database == ":memory:":
        return

    path = Path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def _create_engine(url: str):
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,
    }

    parsed = make_url(url)
    backend = parsed.get_backend_name()
    driver = parsed.get_driver_name()

    if backend == "sqlite":
        connect_args["check_same_thread"] = False
        _ensure_sqlite_path(url)
    else:
        # Recycle long-lived connections so pooler idle timeouts do not kill
        # them between scheduled settlement passes.
        engine_kwargs["pool_recycle"] = 300

        if backend.startswith("postgresql"):
            connect_args.setdefault("keepalives", 1)
            connect_args.setdefault("keepalives_idle", 120)
            connect_args.setdefault("keepalives_interval", 30)
            connect_args.setdefault("keepalives_count", 5)
            # Transaction poolers reject PREPARE.
            if driver == "psycopg":
                connect_args.setdefault("prepare_threshold", None)

    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    return create_engine(url, **engine_kwargs)


def _create_session_factory(engine) -> sessionmaker[Session]:
    # expire_on_commit stays off: settlement keeps reading wager snapshots after
    # each per-wager commit.
    return sessionmaker(
        bind=engine, autoflush=True, autocommit=False, expire_on_commit=False, future=True
    )


def _build_db_components(url: str):
    engine = _create_engine(url)
    session_factory = _create_session_factory(engine)
    return engine, session_factory


engine, SessionLocal = _build_db_components(settings.resolved_database_url)
Base = declarative_base()


def _apply_schema_updates(bind) -> None:
    with bind.begin() as connection:
        connection.execute(
            text("CREATE INDEX IF NOT EXISTS ix_wagers_status ON wagers (status)")
        )
        connection.execute(
            text(
                "CREATE INDEX IF NOT EXISTS ix_coin_transactions_user"
                " ON coin_transactions (user_id, created_at)"
            )
        )


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db(bind=None) -> None:
    from . import models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    _apply_schema_updates(target)
