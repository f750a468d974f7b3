"""
Shared pytest fixtures for the multicloud-deploy test suite.

FakeExecutor stands in for CommandExecutor with scripted responses;
FakeCloud builds on it with bucket, database and site state so the
reconcilers and the engine can run against it unchanged.
"""
import json
import shlex
from pathlib import Path

import pytest

from multicloud_deploy.config.settings import Settings
from multicloud_deploy.engine.orchestrator import DeploymentEngine
from multicloud_deploy.exceptions import CommandExecutionError
from multicloud_deploy.models.command import CommandResult
from multicloud_deploy.models.deployment import CloudflareContext, DeploymentSpec, GcpContext
from multicloud_deploy.providers.accounts import SwitchResult
from multicloud_deploy.providers.commands import CommandTemplates
from multicloud_deploy.reconciler.base import ReconcileContext
from multicloud_deploy.reconciler.schema import parse_create_table, split_statements
from multicloud_deploy.utils.command_runner import classify_failure, maybe_await

# ── Constants ──────────────────────────────────────────────────────────────
ACCOUNT_ID = "0123456789abcdef0123456789abcdef"
WORKER_URL = "https://app-worker.acme.workers.dev"

SCHEMA_SQL = """
-- Application schema
CREATE TABLE users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    created_at INTEGER NOT NULL DEFAULT (unixepoch())
);

CREATE TABLE uploads (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    r2_key TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id)
);

CREATE INDEX idx_uploads_user_id ON uploads(user_id);
"""

INDEX_HTML = """<!doctype html>
<html><body><script>
const WORKER_URL = 'http://localhost:8787';
</script></body></html>
"""


def failure(command: str, message: str, exit_code: int = 1) -> CommandResult:
    """Failed CommandResult classified the same way the real executor does."""
    return CommandResult(
        command=command,
        success=False,
        stderr=message,
        exit_code=exit_code,
        error=message,
        category=classify_failure(message, exit_code),
    )


class FakeExecutor:
    """
    Scripted CommandExecutor.

    Rules match on a substring of the command line; the most recently added
    matching rule wins. Unmatched commands succeed with empty output.
    """

    def __init__(self):
        self.rules = []
        self.calls = []

    def on(self, fragment, stdout="", *, fail=None, exit_code=1, handler=None):
        """
        Add a rule.

        Args:
            fragment: Substring of the command line to match
            stdout: Output of a successful run
            fail: Error message; makes the command fail
            exit_code: Exit code used with fail
            handler: Callable(command) returning stdout or a CommandResult
        """
        self.rules.append((fragment, stdout, fail, exit_code, handler))
        return self

    def count(self, fragment: str) -> int:
        return sum(1 for command in self.calls if fragment in command)

    def _respond(self, command: str) -> CommandResult:
        for fragment, stdout, fail, exit_code, handler in reversed(self.rules):
            if fragment not in command:
                continue
            if handler is not None:
                outcome = handler(command)
                if isinstance(outcome, CommandResult):
                    return outcome
                stdout = outcome or ""
            elif fail is not None:
                return failure(command, fail, exit_code)
            return CommandResult(command=command, success=True, stdout=stdout, exit_code=0)
        return CommandResult(command=command, success=True, exit_code=0)

    def _finish(self, command: str, result: CommandResult, throw_on_error: bool) -> CommandResult:
        if not result.success and throw_on_error:
            raise CommandExecutionError(
                result.error or f"Command failed: {command}",
                result=result,
                context={"command": command},
            )
        return result

    async def execute(self, command, *, cwd=None, timeout=None, env=None, silent_output=True,
                      throw_on_error=False, max_retries=None, base_retry_delay=None):
        self.calls.append(command)
        return self._finish(command, self._respond(command), throw_on_error)

    async def execute_interactive(self, command, on_line=None, *, cwd=None, timeout=None, env=None,
                                  throw_on_error=False, max_retries=None, base_retry_delay=None):
        self.calls.append(command)
        result = self._respond(command)
        if on_line is not None:
            for line in result.stdout.splitlines():
                await maybe_await(on_line(line, "stdout"))
            for line in result.stderr.splitlines():
                await maybe_await(on_line(line, "stderr"))
        return self._finish(command, result, throw_on_error)


class FakeCloud:
    """wrangler/gcloud behaviour over in-memory provider state."""

    account_id = ACCOUNT_ID
    worker_url = WORKER_URL
    failure = staticmethod(failure)

    def __init__(self):
        self.buckets = set()
        self.databases = set()
        self.tables = {}  # name -> {"columns": [...], "rows": int}
        self.pages_projects = set()
        self.enabled_apis = set()
        self.applied_sql = []
        self.dropped = []
        self.secret_payloads = []
        self.secret_files = []
        self.deployed_index = None
        self.worker_configs = []
        self.worker_config_files = []

        e = self.executor = FakeExecutor()
        e.on("wrangler --version", "3.80.0")
        e.on("gcloud --version", "Google Cloud SDK 480.0.0")
        e.on("wrangler whoami", (
            "You are logged in with an OAuth Token, associated with the email dev@example.com.\n"
            f"| Dev Account | {ACCOUNT_ID} |"
        ))
        e.on("gcloud auth list --filter", "dev@example.com")
        e.on("gcloud services list", handler=lambda c: "\n".join(sorted(self.enabled_apis)))
        e.on("gcloud services enable", handler=self._enable_api)
        e.on("wrangler r2 bucket list", handler=self._list_buckets)
        e.on("wrangler r2 bucket create", handler=self._create_bucket)
        e.on("wrangler r2 bucket cors set", "Set CORS configuration")
        e.on("wrangler d1 list --json", handler=self._list_databases)
        e.on("wrangler d1 create", handler=self._create_database)
        e.on("wrangler d1 execute", handler=self._d1_execute)
        e.on("wrangler secret bulk", handler=self._bulk_secrets)
        e.on("wrangler deploy --name", handler=self._deploy_worker)
        e.on("wrangler deployments list", "")
        e.on("wrangler pages project create", handler=self._create_pages_project)
        e.on("wrangler pages deploy", handler=self._pages_deploy)
        e.on("wrangler pages deployment list", "[]")

    @staticmethod
    def args(command: str):
        return shlex.split(command)

    def _enable_api(self, command):
        self.enabled_apis.add(self.args(command)[3])
        return "Operation finished successfully."

    def _list_buckets(self, command):
        return "\n".join(f"name:           {b}\ncreation_date:  2024-01-01T00:00:00.000Z" for b in sorted(self.buckets))

    def _create_bucket(self, command):
        name = self.args(command)[-1]
        if name in self.buckets:
            return failure(command, f"A bucket with this name already exists: {name}")
        self.buckets.add(name)
        return f"Created bucket '{name}'"

    def _list_databases(self, command):
        return json.dumps([{"uuid": f"uuid-{n}", "name": n} for n in sorted(self.databases)])

    def _create_database(self, command):
        name = self.args(command)[-1]
        if name in self.databases:
            return failure(command, f"A database with that name already exists [code: 7502]")
        self.databases.add(name)
        return f"Successfully created DB '{name}'"

    def add_table(self, name, columns, rows=0):
        self.tables[name] = {"columns": list(columns), "rows": rows}

    def _rows(self, rows):
        return json.dumps([{"results": rows, "success": True, "meta": {"changes": 0}}])

    def _apply_file(self, command, sql):
        """Apply a SQL file statement by statement, like `d1 execute --file`."""
        self.applied_sql.append(sql)
        for statement in split_statements(sql):
            words = statement.split()
            head = " ".join(words[:2]).upper()
            if head == "DROP TABLE":
                table = words[-1]
                self.dropped.append(table)
                self.tables.pop(table, None)
            elif head == "ALTER TABLE" and len(words) > 4 and words[3].upper() == "ADD":
                table = words[2]
                column = words[5] if words[4].upper() == "COLUMN" else words[4]
                columns = self.tables[table]["columns"]
                if column in columns:
                    return failure(command, f"duplicate column name: {column}: SQLITE_ERROR")
                columns.append(column)
            elif head == "INSERT INTO":
                self.tables[words[2].split("(")[0]]["rows"] += 1
            else:
                table = parse_create_table(statement)
                if table is not None and table.name not in self.tables:
                    self.add_table(table.name, table.columns)
        return "Executed queries"

    def _d1_execute(self, command):
        args = self.args(command)
        files = [a.split("=", 1)[1] for a in args if a.startswith("--file=")]
        if files:
            return self._apply_file(command, Path(files[0]).read_text())

        sql = [a.split("=", 1)[1] for a in args if a.startswith("--command=")][0]
        if sql.startswith("SELECT name FROM sqlite_master"):
            return self._rows([{"name": name} for name in self.tables])
        if sql.startswith("PRAGMA table_info("):
            table = sql[len("PRAGMA table_info("):-1]
            columns = self.tables.get(table, {"columns": []})["columns"]
            return self._rows([{"cid": i, "name": c, "type": "TEXT"} for i, c in enumerate(columns)])
        if sql.startswith("SELECT COUNT(*)"):
            table = sql.split()[-1]
            return self._rows([{"count": self.tables[table]["rows"]}])
        if sql.startswith("DROP TABLE IF EXISTS"):
            table = sql.split()[-1]
            self.dropped.append(table)
            self.tables.pop(table, None)
            return self._rows([])
        return self._rows([])

    def _bulk_secrets(self, command):
        path = Path(self.args(command)[3])
        self.secret_files.append(path)
        self.secret_payloads.append(json.loads(path.read_text()))
        return "Finished processing secrets file: 2 secrets successfully uploaded"

    def _deploy_worker(self, command):
        args = self.args(command)
        path = Path(args[args.index("--config") + 1])
        self.worker_config_files.append(path)
        self.worker_configs.append(json.loads(path.read_text()))
        return f"Uploaded {args[3]} (2.1 sec)\nDeployed {args[3]} triggers\n  {WORKER_URL}"

    def _create_pages_project(self, command):
        name = self.args(command)[4]
        if name in self.pages_projects:
            return failure(command, "A project with this name already exists. [code: 8000002]")
        self.pages_projects.add(name)
        return f"Successfully created the '{name}' project."

    def _pages_deploy(self, command):
        directory = Path(self.args(command)[3])
        index = directory / "index.html"
        self.deployed_index = index.read_text() if index.exists() else None
        return "Deployment complete! Take a peek over at https://abc123.app-frontend.pages.dev"


class FakeSwitcher:
    """AccountSwitcher returning scripted results."""

    def __init__(self, identity=None, project=None, cloudflare=None):
        self.identity = identity
        self.project = project
        self.cloudflare = cloudflare
        self.calls = []

    async def switch_identity(self, account_email):
        self.calls.append(("identity", account_email))
        return self.identity or SwitchResult(success=True, current_context=account_email)

    async def switch_project_context(self, project_id):
        self.calls.append(("project", project_id))
        return self.project or SwitchResult(success=True, current_context=project_id)

    async def verify_cloudflare_context(self, context):
        self.calls.append(("cloudflare", context.account_id))
        return self.cloudflare or SwitchResult(success=True, current_context=context.account_id)


# ── Settings and codebase ───────────────────────────────────────────────────

@pytest.fixture
def codebase(tmp_path):
    """Worker codebase with a schema file and a static site."""
    root = tmp_path / "codebase"
    (root / "public").mkdir(parents=True)
    (root / "schema.sql").write_text(SCHEMA_SQL)
    (root / "public" / "index.html").write_text(INDEX_HTML)
    return root


@pytest.fixture
def settings(tmp_path, codebase):
    return Settings(
        codebase_path=codebase,
        config_file=tmp_path / "deployments-secrets.json",
        history_dir=tmp_path / "history",
        log_dir=tmp_path / "logs",
        required_secret_keys=["API_KEY"],
        max_retries=0,
        base_retry_delay=0,
        cloudflare_api_token=None,
    )


# ── Fakes ───────────────────────────────────────────────────────────────────

@pytest.fixture
def cloud():
    return FakeCloud()


@pytest.fixture
def switcher():
    return FakeSwitcher()


@pytest.fixture
def ctx(cloud, settings):
    """ReconcileContext wired to the fake cloud."""
    return ReconcileContext(
        executor=cloud.executor,
        commands=CommandTemplates(),
        settings=settings,
        cwd=settings.codebase_path,
    )


@pytest.fixture
def spec():
    return DeploymentSpec(
        id="production",
        name="production",
        gcp=GcpContext(account_email="dev@example.com", project_id="demo-project"),
        cloudflare=CloudflareContext(account_id=ACCOUNT_ID),
        secrets={"API_KEY": "secret-value", "API_HOST": "api.example.com"},
    )


@pytest.fixture
def engine(cloud, switcher, settings):
    return DeploymentEngine(cloud.executor, account_switcher=switcher, settings=settings)


@pytest.fixture
def make_engine(cloud, settings):
    """Engine factory taking scripted SwitchResults (identity=, project=, cloudflare=)."""
    def factory(**results):
        switcher = FakeSwitcher(**results)
        return DeploymentEngine(cloud.executor, account_switcher=switcher, settings=settings), switcher
    return factory
