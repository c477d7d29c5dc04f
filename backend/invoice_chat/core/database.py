from sqlmodel import SQLModel, create_engine

from invoice_chat.core.config import settings

# SQLite busy timeout matches the storage call timeout
engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False, "timeout": settings.storage_timeout},
)


def init_db() -> None:
    import invoice_chat.models.audit  # noqa: F401 - ensure models are registered
    import invoice_chat.models.conversation  # noqa: F401
    import invoice_chat.models.invoice  # noqa: F401
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)
