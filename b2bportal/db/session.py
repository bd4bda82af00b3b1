from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from b2bportal.core.config import settings

engine_kwargs: dict[str, object] = {
    # Detect and recover from stale pooled connections.
    "pool_pre_ping": True,
}

if not settings.database_url.lower().startswith("sqlite"):
    # Pool sizing for networked databases (Postgres).
    engine_kwargs.update(
        {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout_seconds,
            "pool_recycle": settings.db_pool_recycle_seconds,
        }
    )

engine = create_engine(settings.database_url, **engine_kwargs)

# Loaded rows keep their values after commit so handlers can build responses
# without a reload. Credit code never trusts these cached copies; it re-reads
# its rows under row locks inside LedgerStore.atomic.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
