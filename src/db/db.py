from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url

from db.models import Base


def init_db(database_url: str, *, echo: bool = False, reset: bool = False) -> Engine:
    url = make_url(database_url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        # The scheduler thread and API worker threads share the pool.
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            path = Path(url.database)
            path.parent.mkdir(parents=True, exist_ok=True)
            if reset and path.exists():
                path.unlink()

    engine: Engine = create_engine(url, echo=echo, connect_args=connect_args)

    Base.metadata.create_all(engine)
    return engine
