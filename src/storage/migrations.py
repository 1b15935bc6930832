"""Simple migration support for the archive store.

``create_all()`` handles fresh databases. Stores created before the
denormalized ``url_year``/``url_monthday`` columns existed need those
columns added and filled from the permalinks; ``migrate`` does both
without requiring Alembic.
"""

from __future__ import annotations

import logging

from sqlalchemy import inspect, select, text, update

from src.storage.models import ArticleUrl, Base
from src.validation.schemas import permalink_date_fields

logger = logging.getLogger(__name__)


def check_schema(engine) -> list[str]:
    """Compare existing database schema against the ORM models.

    Returns a list of issues found (empty list means schema is up to date).
    """
    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())
    expected_tables = set(Base.metadata.tables.keys())

    issues = []
    missing = expected_tables - existing_tables
    for table in sorted(missing):
        issues.append(f"Missing table: {table}")

    for table in sorted(expected_tables & existing_tables):
        existing_cols = {c["name"] for c in inspector.get_columns(table)}
        expected_cols = {c.name for c in Base.metadata.tables[table].columns}
        for col in sorted(expected_cols - existing_cols):
            issues.append(f"Missing column: {table}.{col}")

    return issues


def backfill_date_fields(db) -> int:
    """Fill ``url_year``/``url_monthday`` for rows stored without them.

    Returns the number of rows updated. Rows whose URL does not have the
    expected permalink shape are left NULL.
    """
    updated = 0
    with db.engine.begin() as conn:
        rows = conn.execute(
            select(ArticleUrl.id, ArticleUrl.url).where(ArticleUrl.url_year.is_(None))
        ).all()
        for row_id, url in rows:
            year, monthday = permalink_date_fields(
                url, db.site.origin, db.site.permalink_digits,
            )
            if year is None:
                continue
            conn.execute(
                update(ArticleUrl)
                .where(ArticleUrl.id == row_id)
                .values(url_year=year, url_monthday=monthday)
            )
            updated += 1
    if updated:
        logger.info("Backfilled year/monthday for %d archived URLs.", updated)
    return updated


def migrate(db) -> None:
    """Apply any missing tables or columns, then backfill derived columns.

    This is a simple additive migration: it can add tables and columns
    but does not handle column type changes or deletions.
    """
    engine = db.engine
    issues = check_schema(engine)
    if not issues:
        logger.info("Schema is up to date.")
    else:
        logger.info("Found %d schema issues, applying migrations...", len(issues))

        # Create any missing tables (and their indexes)
        Base.metadata.create_all(engine)

        for issue in issues:
            if issue.startswith("Missing column:"):
                table_col = issue.replace("Missing column: ", "")
                table, col = table_col.split(".")
                sa_col = Base.metadata.tables[table].columns[col]
                col_type = sa_col.type.compile(engine.dialect)
                sql = f"ALTER TABLE {table} ADD COLUMN {col} {col_type} NULL"
                with engine.begin() as conn:
                    conn.execute(text(sql))
                logger.info("Added column: %s.%s", table, col)

        # Indexes on columns that were just added
        for table in Base.metadata.sorted_tables:
            for index in table.indexes:
                index.create(engine, checkfirst=True)

    backfill_date_fields(db)
    logger.info("Migration complete.")
