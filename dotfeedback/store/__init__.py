"""
store - Data access layer.

Routes and services depend on the DataStore contract only; the concrete
backend is chosen once at startup by build_store().
"""
from dotfeedback.store.base import DataStore
from dotfeedback.store.memory import InMemoryStore


async def build_store(backend: str, database_url: str, retention_limit: int) -> DataStore:
    """
    Construct the configured backend.

    "document" creates the SQLAlchemy engine and any missing tables before
    returning; the import is local so the memory backend never loads a
    database driver.
    """
    if backend == "memory":
        return InMemoryStore(retention_limit=retention_limit)
    if backend == "document":
        from dotfeedback.database import create_engine, create_session_factory, init_models
        from dotfeedback.store.document import DocumentStore

        engine = create_engine(database_url)
        await init_models(engine)
        return DocumentStore(
            create_session_factory(engine),
            retention_limit=retention_limit,
            engine=engine,
        )
    raise ValueError(f"Unknown storage backend '{backend}'")


__all__ = ["DataStore", "InMemoryStore", "build_store"]
