"""
Database (D1) reconciliation: existence, schema drift, schema apply and
pending migrations.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Tuple

from ..exceptions import CommandExecutionError, DatabaseError, DeployError
from ..models.command import ErrorCategory
from ..models.deployment import StepOutcome
from ..utils.logging import get_logger
from ..utils.validation import validate_sql_identifier
from .base import ReconcileContext, ensure_resource
from .schema import diff_schema, non_additive_statements, parse_schema, render_idempotent_schema

logger = get_logger(__name__)

LIST_TABLES_SQL = (
    "SELECT name FROM sqlite_master WHERE type='table' "
    "AND name NOT LIKE 'sqlite_%' AND name NOT LIKE '_cf_%'"
)

EXECUTED_SUFFIX = ".executed.sql"


def _extract_json(output: str) -> Any:
    """Parse the JSON document in CLI output, skipping any banner text before it."""
    starts = [i for i in (output.find("["), output.find("{")) if i != -1]
    if not starts:
        raise DatabaseError("No JSON in command output", context={"output": output[-500:]})
    try:
        return json.loads(output[min(starts):])
    except ValueError as e:
        raise DatabaseError(f"Invalid JSON in command output: {e}", context={"output": output[-500:]})


def parse_d1_rows(output: str) -> List[Dict[str, Any]]:
    """
    Rows returned by `wrangler d1 execute --json`.

    The CLI prints a list with one result object per statement; rows of all
    statements are concatenated.
    """
    payload = _extract_json(output)
    if isinstance(payload, dict):
        payload = [payload]

    rows = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        if item.get("success") is False:
            raise DatabaseError(
                f"Query failed: {item.get('error', 'unknown error')}",
                context={"result": item}
            )
        rows.extend(item.get("results") or [])
    return rows


def parse_databases(output: str) -> Dict[str, str]:
    """Database name -> id from `wrangler d1 list --json`."""
    payload = _extract_json(output)
    return {
        item["name"]: str(item.get("uuid") or item.get("id") or "")
        for item in payload
        if isinstance(item, dict) and "name" in item
    }


def parse_database_names(output: str) -> List[str]:
    """Database names from `wrangler d1 list --json`."""
    return list(parse_databases(output))


async def _rows(ctx: ReconcileContext, database_name: str, sql: str) -> List[Dict[str, Any]]:
    result = await ctx.query("database_query", database=database_name, sql=sql)
    return parse_d1_rows(result.stdout)


async def introspect_tables(ctx: ReconcileContext, database_name: str) -> Dict[str, List[str]]:
    """Live table name -> column names, via sqlite_master and PRAGMA table_info."""
    tables = {}
    for row in await _rows(ctx, database_name, LIST_TABLES_SQL):
        name = row.get("name")
        if not name:
            continue
        validate_sql_identifier(name)
        columns = await _rows(ctx, database_name, f"PRAGMA table_info({name})")
        tables[name] = [column["name"] for column in columns if "name" in column]
    return tables


async def count_rows(ctx: ReconcileContext, database_name: str, table: str) -> int:
    validate_sql_identifier(table)
    rows = await _rows(ctx, database_name, f"SELECT COUNT(*) AS count FROM {table}")
    if not rows:
        return 0
    return int(next(iter(rows[0].values()), 0) or 0)


async def apply_schema(ctx: ReconcileContext, database_name: str, sql: str) -> None:
    """Apply SQL from a temporary file that is always removed."""
    fd, temp_path = tempfile.mkstemp(prefix="schema-", suffix=".sql")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(sql)
        await ctx.mutate("database_apply_file", database=database_name, file=temp_path)
    finally:
        Path(temp_path).unlink(missing_ok=True)


def pending_migrations(directory: Path) -> List[Path]:
    """SQL migrations not yet marked executed, in name order."""
    if not directory.is_dir():
        return []
    return sorted(
        path for path in directory.glob("*.sql")
        if path.is_file() and not path.name.endswith(EXECUTED_SUFFIX)
    )


def mark_executed(path: Path) -> Path:
    """Rename 0002_add_status.sql to 0002_add_status.executed.sql."""
    target = path.with_name(path.name[: -len(".sql")] + EXECUTED_SUFFIX)
    path.rename(target)
    return target


async def run_migrations(ctx: ReconcileContext, database_name: str) -> Tuple[List[str], List[str]]:
    """
    Apply pending migrations from the codebase migrations directory.

    Each migration is marked executed once applied. A migration rejected
    because its change already exists (duplicate column, existing index)
    is marked executed as well. The first real failure stops the pass,
    since later migrations may depend on it.

    Returns:
        (names of migrations marked executed, warnings)
    """
    applied = []
    warnings = []

    for path in pending_migrations(Path(ctx.cwd) / ctx.settings.migrations_dir):
        try:
            await ctx.mutate("database_apply_file", database=database_name, file=str(path.resolve()))
        except CommandExecutionError as e:
            if e.category is not ErrorCategory.ALREADY_EXISTS:
                logger.warning("migration_failed", migration=path.name, error=str(e))
                warnings.append(f"Migration {path.name} failed: {e}; later migrations not applied")
                break
            logger.info("migration_already_applied", migration=path.name, error=str(e))
        else:
            logger.info("migration_applied", migration=path.name)

        try:
            mark_executed(path)
        except OSError as e:
            warnings.append(f"Migration {path.name} applied but could not be marked executed: {e}")
            break
        applied.append(path.name)

    return applied, warnings


async def _reconcile_schema(
    ctx: ReconcileContext,
    database_name: str,
    schema_sql: str,
    created: bool,
    summary: List[str],
    warnings: List[str],
) -> None:
    declared = parse_schema(schema_sql)
    skipped = []

    if not created and declared:
        live = await introspect_tables(ctx, database_name)
        diff = diff_schema(declared, live)

        for table, missing in diff.missing_columns.items():
            rows = await count_rows(ctx, database_name, table)
            if rows > 0:
                skipped.append(table)
                message = (
                    f"Table {table} is missing columns {', '.join(missing)} but has {rows} rows; "
                    "not recreated, migrate it manually"
                )
                logger.warning("schema_drift_table_not_empty", table=table, missing=missing, rows=rows)
                warnings.append(message)
                continue

            logger.info("schema_drift_dropping_empty_table", table=table, missing=missing)
            await ctx.mutate("database_query", database=database_name, sql=f"DROP TABLE IF EXISTS {table}")
            summary.append(f"recreated {table}")

    # An existing database only ever gets CREATE ... IF NOT EXISTS
    if not created:
        held_back = non_additive_statements(schema_sql)
        if held_back:
            logger.warning(
                "schema_statements_not_reapplied",
                count=len(held_back),
                statements=[" ".join(statement.split()[:2]).upper() for statement in held_back],
            )
            summary.append(f"{len(held_back)} non-CREATE statements not re-applied")

    rendered = render_idempotent_schema(schema_sql, skip_tables=skipped, additive_only=not created)
    if rendered:
        await apply_schema(ctx, database_name, rendered)
        summary.append("schema applied")


async def ensure_database(ctx: ReconcileContext, database_name: str) -> StepOutcome:
    """
    Ensure the database exists, matches the declared schema and has every
    pending migration applied.

    A new database gets the whole schema file. An existing one only gets its
    CREATE statements, made idempotent; DROP, ALTER and data statements are
    left to migrations. Tables whose live definition lacks declared columns
    are dropped and recreated only while they hold no rows; a table with rows
    is left alone and reported as a warning.

    Returns:
        StepOutcome whose resource_id is the database id, when known
    """
    databases: Dict[str, str] = {}

    async def is_present() -> bool:
        nonlocal databases
        listing = await ctx.query("database_list")
        databases = parse_databases(listing.stdout)
        return database_name in databases

    created = await ensure_resource(
        ctx, "database", database_name, is_present, "database_create", database=database_name
    )
    summary = [f"Created database {database_name}" if created else f"Database {database_name} exists"]
    warnings = []

    database_id = databases.get(database_name, "")
    if not database_id:
        try:
            await is_present()
            database_id = databases.get(database_name, "")
        except DeployError as e:
            logger.warning("database_id_lookup_failed", database=database_name, error=str(e))

    schema_path = Path(ctx.cwd) / ctx.settings.schema_file
    if schema_path.is_file():
        await _reconcile_schema(ctx, database_name, schema_path.read_text(), created, summary, warnings)
    else:
        summary.append(f"no {ctx.settings.schema_file} found, schema skipped")

    applied, migration_warnings = await run_migrations(ctx, database_name)
    if applied:
        summary.append(f"{len(applied)} migrations applied")
    warnings.extend(migration_warnings)

    return StepOutcome(details="; ".join(summary), warnings=warnings, resource_id=database_id)
