"""Column types that work on PostgreSQL and SQLite."""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONColumn = JSON().with_variant(JSONB(), "postgresql")
