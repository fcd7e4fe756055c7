"""Document store schema and collection paths (code-first approach)."""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


USERS_COLLECTION = "Users"

TABLE_SCHEMAS = {
    "documents": """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data TEXT NOT NULL,
            created TEXT NOT NULL,
            updated TEXT NOT NULL,
            PRIMARY KEY (collection, id)
        )
    """,
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_documents_created ON documents (collection, created)",
    "CREATE INDEX IF NOT EXISTS idx_documents_series ON documents (collection, json_extract(data, '$.seriesId'))",
    "CREATE INDEX IF NOT EXISTS idx_documents_group_key ON documents (collection, json_extract(data, '$.groupKey'))",
]


def chores_collection(group_key: str | int) -> str:
    """Collection path holding one household's chores."""
    return f"chores/group/{group_key}"


def chore_logs_collection(group_key: str | int) -> str:
    """Collection path holding one household's append-only completion log."""
    return f"choreLogs/group/{group_key}"


async def init_db(*, db_path: str | None = None) -> None:
    """Create the documents table and its indexes if they do not exist."""
    conn = await db_client.get_connection(db_path=db_path)

    for table_name, ddl in TABLE_SCHEMAS.items():
        await conn.execute(ddl)
        logger.debug("Ensured table", extra={"table": table_name})

    for index_sql in INDEXES:
        await conn.execute(index_sql)

    await conn.commit()
    logger.info("Database schema initialized", extra={"db_path": str(db_client.get_db_path(db_path))})
