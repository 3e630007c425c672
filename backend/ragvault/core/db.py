from sqlalchemy.engine import Engine
from sqlmodel import create_engine, SQLModel

from ragvault.models import kb_entries, kb_namespaces  # noqa: F401  (register tables)
from ragvault.core.config import settings


def _connect_args(database_url: str) -> dict:
    # SQLite connections are shared with the threadpool FastAPI runs sync handlers in
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args(settings.DATABASE_URL))


def init_db(bind: Engine | None = None) -> None:
    SQLModel.metadata.create_all(bind or engine)
