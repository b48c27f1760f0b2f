import logging

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect as sqlalchemy_inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from kiosk_nav.db.base import Base

logger = logging.getLogger(__name__)

__all__ = [
    "ensure_schema",
    "add_missing_columns",
]


def add_missing_columns(conn: Connection, metadata: sa.MetaData = Base.metadata) -> list[str]:
    """
    Аддитивная миграция: добавляет в существующие таблицы колонки,
    которые есть в моделях, но отсутствуют в файле базы (старая версия схемы).

    Колонки добавляются как nullable, данные не трогаются.
    Ошибка ALTER логируется и не прерывает запуск.

    Returns:
        Список добавленных колонок в виде "table.column".
    """
    inspector = sqlalchemy_inspect(conn)
    existing_tables = set(inspector.get_table_names())
    op = Operations(MigrationContext.configure(conn))
    added: list[str] = []

    for table in metadata.sorted_tables:
        if table.name not in existing_tables:
            continue
        present = {col["name"] for col in inspector.get_columns(table.name)}
        for column in table.columns:
            if column.name in present:
                continue
            try:
                op.add_column(table.name, sa.Column(column.name, column.type, nullable=True))
            except SQLAlchemyError as e:
                logger.error(f"Schema migration failed for {table.name}.{column.name}: {e}")
                continue
            added.append(f"{table.name}.{column.name}")
            logger.info(f"Schema migration: added column {table.name}.{column.name}")

    return added


def ensure_schema(conn: Connection) -> list[str]:
    """
    Создаёт недостающие таблицы и добавляет недостающие колонки.
    """
    Base.metadata.create_all(conn)
    return add_missing_columns(conn)
