"""
SQL query builder for ledger and stats upserts.

Generates UPSERT queries from column definitions so the per-table
statements stay in sync with the row dicts that feed them.
All queries use the PostgreSQL ON CONFLICT ... DO UPDATE SET pattern.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Sequence


def build_upsert(
    table: str,
    columns: Sequence[str],
    conflict_keys: Sequence[str],
    exclude_from_update: Optional[Sequence[str]] = None,
    touch_updated_at: bool = True,
) -> str:
    """Generate an UPSERT query from a column list.

    Args:
        table: Table name
        columns: All inserted column names (including conflict keys)
        conflict_keys: Columns that define uniqueness (for ON CONFLICT)
        exclude_from_update: Extra columns to NOT overwrite on conflict
        touch_updated_at: Set updated_at = NOW() on conflict

    Returns:
        SQL with %s placeholders in column order

    Example:
        >>> build_upsert("team_match_stats", ["team_name", "game_id", "venue", "xg_for"],
        ...              ["team_name", "game_id", "venue"])
    """
    excluded = set(conflict_keys) | set(exclude_from_update or ())
    assignments = [f"{col} = EXCLUDED.{col}" for col in columns if col not in excluded]
    if touch_updated_at:
        assignments.append("updated_at = NOW()")

    columns_str = ", ".join(columns)
    placeholders_str = ", ".join("%s" for _ in columns)
    conflict_str = ", ".join(conflict_keys)

    if not assignments:
        return (
            f"INSERT INTO {table} ({columns_str}) VALUES ({placeholders_str}) "
            f"ON CONFLICT ({conflict_str}) DO NOTHING"
        )

    update_str = ",\n                ".join(assignments)
    query = f"""
        INSERT INTO {table} ({columns_str})
        VALUES ({placeholders_str})
        ON CONFLICT ({conflict_str}) DO UPDATE SET
                {update_str}
    """
    return query.strip()


@lru_cache(maxsize=64)
def cached_upsert(
    table: str,
    columns: tuple[str, ...],
    conflict_keys: tuple[str, ...],
) -> str:
    """Memoized build_upsert for the hot per-row paths."""
    return build_upsert(table, columns, conflict_keys)
