"""
Declarative SQL schema parsing and drift detection.

Parses the CREATE TABLE statements of a schema file into declared tables,
compares them with the live database's tables, and rewrites the file into
DDL that can be re-applied any number of times.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

_CONSTRAINT_KEYWORDS = {"CONSTRAINT", "PRIMARY", "UNIQUE", "CHECK", "FOREIGN"}

_CREATE_TABLE = re.compile(
    r"^\s*CREATE\s+(?:TEMP\s+|TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?P<name>[`\"\[]?[\w.]+[`\"\]]?)\s*\((?P<body>.*)\)[^)]*$",
    re.IGNORECASE | re.DOTALL,
)
_IDEMPOTENT_DDL = re.compile(
    r"^(\s*CREATE\s+(?:UNIQUE\s+|TEMP\s+|TEMPORARY\s+)?(?:TABLE|INDEX|VIEW|TRIGGER)\s+)(?!\s*IF\s+NOT\s+EXISTS)",
    re.IGNORECASE,
)
_ADDITIVE_DDL = re.compile(
    r"^\s*CREATE\s+(?:UNIQUE\s+|TEMP\s+|TEMPORARY\s+)?(?:TABLE|INDEX|VIEW|TRIGGER)\b",
    re.IGNORECASE,
)
_TARGET_TABLE = [
    re.compile(r"^\s*CREATE\s+(?:UNIQUE\s+)?INDEX\s+.*?\bON\s+(?P<table>[`\"\[]?\w+[`\"\]]?)", re.IGNORECASE | re.DOTALL),
    re.compile(r"^\s*CREATE\s+(?:TEMP\s+|TEMPORARY\s+)?TRIGGER\s+.*?\bON\s+(?P<table>[`\"\[]?\w+[`\"\]]?)", re.IGNORECASE | re.DOTALL),
    re.compile(r"^\s*INSERT\s+(?:OR\s+\w+\s+)?INTO\s+(?P<table>[`\"\[]?\w+[`\"\]]?)", re.IGNORECASE),
    re.compile(r"^\s*CREATE\s+(?:TEMP\s+|TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?(?P<table>[`\"\[]?\w+[`\"\]]?)", re.IGNORECASE),
]


@dataclass
class TableSchema:
    """Declared table: name and column names in declaration order."""
    name: str
    columns: List[str] = field(default_factory=list)


@dataclass
class SchemaDiff:
    """Difference between declared and live schema."""
    missing_tables: List[str] = field(default_factory=list)
    missing_columns: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def has_drift(self) -> bool:
        """True when an existing table lacks declared columns (missing tables are simply created)."""
        return bool(self.missing_columns)


def unquote_identifier(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and (name[0], name[-1]) in {("`", "`"), ('"', '"'), ("[", "]")}:
        return name[1:-1]
    return name


def strip_comments(sql: str) -> str:
    """Remove `--` and `/* */` comments outside string literals."""
    out = []
    i = 0
    quote: Optional[str] = None
    while i < len(sql):
        ch = sql[i]
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            i += 1
        elif ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
            i += 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = len(sql) if end == -1 else end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = len(sql) if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def split_statements(sql: str) -> List[str]:
    """
    Split SQL into statements on top-level semicolons.

    Semicolons inside string literals and inside trigger BEGIN ... END
    bodies do not terminate a statement.
    """
    statements = []
    current = []
    word = []
    depth = 0
    quote: Optional[str] = None

    def close_word():
        nonlocal depth
        token = "".join(word).upper()
        word.clear()
        if token == "BEGIN" and re.match(r"\s*CREATE\b.*\bTRIGGER\b", "".join(current), re.IGNORECASE | re.DOTALL):
            depth += 1
        elif token == "CASE" and depth > 0:
            depth += 1
        elif token == "END" and depth > 0:
            depth -= 1

    for ch in strip_comments(sql):
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch.isalnum() or ch == "_":
            word.append(ch)
            current.append(ch)
            continue
        if word:
            close_word()
        if ch in ("'", '"', "`"):
            quote = ch
            current.append(ch)
        elif ch == ";" and depth == 0:
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
        else:
            current.append(ch)

    if word:
        close_word()
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


def _split_top_level(body: str) -> List[str]:
    parts = []
    current = []
    depth = 0
    quote: Optional[str] = None
    for ch in body:
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"', "`"):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if "".join(current).strip():
        parts.append("".join(current).strip())
    return parts


def parse_create_table(statement: str) -> Optional[TableSchema]:
    """Parse one CREATE TABLE statement; returns None for anything else."""
    match = _CREATE_TABLE.match(statement)
    if not match:
        return None

    table = TableSchema(name=unquote_identifier(match.group("name")))
    for definition in _split_top_level(match.group("body")):
        tokens = definition.split()
        if not tokens or tokens[0].split("(")[0].upper() in _CONSTRAINT_KEYWORDS:
            continue
        table.columns.append(unquote_identifier(tokens[0]))
    return table


def parse_schema(sql: str) -> Dict[str, TableSchema]:
    """Declared tables of a schema file, keyed by table name."""
    tables = {}
    for statement in split_statements(sql):
        table = parse_create_table(statement)
        if table is not None:
            tables[table.name] = table
    return tables


def diff_schema(declared: Dict[str, TableSchema], live: Dict[str, Iterable[str]]) -> SchemaDiff:
    """
    Compare declared tables with live tables.

    Args:
        declared: Output of parse_schema
        live: Live table name -> column names

    Returns:
        SchemaDiff; names compare case-insensitively, extra live columns are ignored
    """
    live_by_name = {name.lower(): {c.lower() for c in columns} for name, columns in live.items()}
    diff = SchemaDiff()

    for name, table in declared.items():
        live_columns = live_by_name.get(name.lower())
        if live_columns is None:
            diff.missing_tables.append(name)
            continue
        missing = [c for c in table.columns if c.lower() not in live_columns]
        if missing:
            diff.missing_columns[name] = missing

    return diff


def statement_target(statement: str) -> Optional[str]:
    """Table a statement writes to or depends on (CREATE TABLE/INDEX/TRIGGER, INSERT), if any."""
    for pattern in _TARGET_TABLE:
        match = pattern.match(statement)
        if match:
            return unquote_identifier(match.group("table"))
    return None


def is_additive(statement: str) -> bool:
    """True for CREATE TABLE/INDEX/VIEW/TRIGGER; anything else changes or removes data."""
    return bool(_ADDITIVE_DDL.match(statement))


def non_additive_statements(sql: str) -> List[str]:
    """Statements of a schema file that are not additive DDL (DROP, ALTER, INSERT, ...)."""
    return [statement for statement in split_statements(sql) if not is_additive(statement)]


def make_idempotent(statement: str) -> str:
    """Add IF NOT EXISTS to CREATE TABLE/INDEX/VIEW/TRIGGER statements."""
    return _IDEMPOTENT_DDL.sub(r"\1IF NOT EXISTS ", statement, count=1)


def render_idempotent_schema(sql: str, skip_tables: Iterable[str] = (), additive_only: bool = False) -> str:
    """
    Rewrite a schema file into re-appliable SQL.

    Statements targeting any table in skip_tables are left out, so a table
    kept back because it still holds rows is not touched. With additive_only,
    only CREATE statements are kept; DROP, ALTER and data statements belong
    to a fresh database or to a migration.
    """
    skip = {name.lower() for name in skip_tables}
    rendered = []
    for statement in split_statements(sql):
        if additive_only and not is_additive(statement):
            continue
        target = statement_target(statement)
        if target is not None and target.lower() in skip:
            continue
        rendered.append(make_idempotent(statement) + ";")
    return "\n\n".join(rendered) + "\n" if rendered else ""
