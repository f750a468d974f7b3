"""
Provider CLI command templates.

Templates are opaque strings with {placeholders}; values are shell-quoted on
render so resource names and file paths can never inject shell syntax.
Override any template by constructing CommandTemplates with a different value.
"""
import shlex  # Escapado seguro de valores para la shell

from pydantic import BaseModel

from ..exceptions import ConfigurationError


class CommandTemplates(BaseModel):
    """wrangler / gcloud command lines used by the reconcilers."""

    # Prerequisites and authentication
    cloudflare_version: str = "wrangler --version"
    gcp_version: str = "gcloud --version"
    cloudflare_whoami: str = "wrangler whoami"
    gcp_active_account: str = 'gcloud auth list --filter=status:ACTIVE --format="value(account)"'
    gcp_credentialed_accounts: str = 'gcloud auth list --format="value(account)"'

    # Context switching
    gcp_set_account: str = "gcloud config set account {account}"
    gcp_get_project: str = "gcloud config get-value project"
    gcp_set_project: str = "gcloud config set project {project}"

    # Google Cloud APIs
    gcp_enabled_services: str = 'gcloud services list --enabled --project={project} --format="value(config.name)"'
    gcp_enable_service: str = "gcloud services enable {service} --project={project} --quiet"

    # Object storage
    bucket_list: str = "wrangler r2 bucket list"
    bucket_create: str = "wrangler r2 bucket create {bucket}"
    bucket_cors_set: str = "wrangler r2 bucket cors set {bucket} --file={file} --force"

    # Database
    database_list: str = "wrangler d1 list --json"
    database_create: str = "wrangler d1 create {database}"
    database_query: str = "wrangler d1 execute {database} --remote --json --command={sql}"
    database_apply_file: str = "wrangler d1 execute {database} --remote --file={file} --yes"

    # Worker
    secrets_bulk: str = "wrangler secret bulk {file} --name {worker}"
    worker_deploy: str = "wrangler deploy --name {worker} --config {config}"
    worker_deployments: str = "wrangler deployments list --name {worker}"

    # Static site
    pages_project_create: str = "wrangler pages project create {project} --production-branch=main"
    pages_deploy: str = "wrangler pages deploy {directory} --project-name={project} --branch=main --commit-dirty=true"
    pages_deployments: str = "wrangler pages deployment list --project-name={project} --environment=production --json"

    def render(self, name: str, **values) -> str:
        """
        Render a template with shell-quoted values.

        Args:
            name: Template field name (e.g. "bucket_create")
            **values: Placeholder values

        Returns:
            Command line ready for CommandExecutor

        Raises:
            ConfigurationError: If the template is unknown or a placeholder is missing
        """
        template = getattr(self, name, None)
        if not isinstance(template, str):
            raise ConfigurationError(
                f"Unknown command template: {name}",
                context={"template": name}
            )

        quoted = {key: shlex.quote(str(value)) for key, value in values.items()}
        try:
            return template.format(**quoted)
        except KeyError as e:
            raise ConfigurationError(
                f"Missing value {e} for command template {name}",
                context={"template": name, "values": sorted(values)}
            )
