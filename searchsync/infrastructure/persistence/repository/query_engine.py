"""SQLAlchemy adapter implementing the paging QueryEngine over search_records."""

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from searchsync.domain.index.port.query_engine import QueryEngine, QueryOptions, QueryResult
from searchsync.infrastructure.persistence.tables import search_records_table as records

logger = logging.getLogger(__name__)


class SQLAlchemyQueryEngine(QueryEngine):
    """Pages records out of the search_records read model.

    Rows are ordered by record id so consecutive pages are stable while the
    table is not being written. Soft-deleted rows are never returned.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def query(self, entity_id: str, options: QueryOptions) -> QueryResult:
        conditions = [
            records.c.entity_id == entity_id,
            records.c.tenant_id == options.tenant_id,
            records.c.deleted_at.is_(None),
        ]
        if options.organization_id is not None:
            conditions.append(records.c.organization_id == options.organization_id)

        for key, value in options.filters.items():
            if key == "id":
                conditions.append(records.c.record_id == str(value))
            elif key == "organization_id":
                conditions.append(records.c.organization_id == value)
            else:
                conditions.append(records.c.data[key].as_string() == str(value))

        if options.partition is not None:
            conditions.append(
                records.c.partition_key % options.partition.count == options.partition.index
            )

        count_stmt = select(func.count()).select_from(records).where(*conditions)
        total = (await self._session.execute(count_stmt)).scalar() or 0

        page = options.page
        stmt = (
            select(
                records.c.record_id,
                records.c.organization_id,
                records.c.data,
                records.c.custom_fields,
            )
            .where(*conditions)
            .order_by(records.c.record_id.asc())
            .offset((page.page - 1) * page.page_size)
            .limit(page.page_size)
        )
        rows = (await self._session.execute(stmt)).fetchall()

        items = [
            _to_item(record_id, organization_id, data, custom_fields, options)
            for record_id, organization_id, data, custom_fields in rows
        ]
        return QueryResult(items=items, total=total)


def _to_item(
    record_id: str,
    organization_id: str | None,
    data: dict[str, Any] | None,
    custom_fields: dict[str, Any] | None,
    options: QueryOptions,
) -> dict[str, Any]:
    item: dict[str, Any] = dict(data or {})
    item["id"] = record_id
    item.setdefault("organization_id", organization_id)
    if options.include_custom_fields and custom_fields:
        for key, value in custom_fields.items():
            item[f"cf:{key}"] = value
    return item
