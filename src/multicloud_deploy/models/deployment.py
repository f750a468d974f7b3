"""
Pydantic models for deployment specs, step records and run results.

Defines the schema for deployment history records stored as JSON.
"""
from datetime import datetime  # Manejo de fechas y timestamps
from enum import Enum  # Crear enumeraciones con valores fijos
from typing import Dict, List, Optional  # Type hints para tipos opcionales y colecciones

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class StepStatus(str, Enum):
    """Valid pipeline step status values."""
    RUNNING = "running"
    COMPLETED = "completed"
    WARNING = "warning"
    FAILED = "failed"


class Criticality(str, Enum):
    """Whether a step failure aborts the run (hard) or is only recorded (soft)."""
    HARD = "hard"
    SOFT = "soft"


class RunState(str, Enum):
    """Engine run state machine: idle -> running -> succeeded | failed."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class _CamelModel(BaseModel):
    """Serializes with camelCase aliases, accepts snake_case or camelCase on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class GcpContext(_CamelModel):
    """Google Cloud identity and project selector."""
    model_config = ConfigDict(frozen=True)

    account_email: Optional[str] = Field(None, description="gcloud account to activate")
    project_id: Optional[str] = Field(None, description="gcloud project to select")


class CloudflareContext(_CamelModel):
    """Cloudflare account selector (verified against wrangler whoami)."""
    model_config = ConfigDict(frozen=True)

    account_id: Optional[str] = Field(None, description="Expected Cloudflare account ID")
    email: Optional[str] = Field(None, description="Cloudflare login email, informational")


class DeploymentSpec(_CamelModel):
    """Immutable input to one orchestration run."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Deployment identifier (history key)")
    name: str = Field("", description="Human readable deployment name")

    compute_name: str = Field(
        "app-worker",
        validation_alias=AliasChoices("computeName", "workerName", "compute_name"),
        description="Worker script name",
    )
    static_site_name: str = Field(
        "app-frontend",
        validation_alias=AliasChoices("staticSiteName", "pagesProjectName", "static_site_name"),
        description="Pages project name",
    )
    database_name: str = Field("app-db", description="D1 database name")
    bucket_name: str = Field("app-storage", description="R2 bucket name")

    gcp: Optional[GcpContext] = Field(None, description="Google Cloud context, optional")
    cloudflare: Optional[CloudflareContext] = Field(None, description="Cloudflare context, optional")

    secrets: Dict[str, str] = Field(default_factory=dict, description="Worker secrets by name")
    deploy_static_site: bool = Field(
        True,
        validation_alias=AliasChoices("deployStaticSite", "deployPages", "deploy_static_site"),
        description="Whether to deploy the static frontend",
    )


class StepRecord(_CamelModel):
    """Running log entry for one pipeline step."""
    step: str = Field(..., description="Stable step key, e.g. deploy-worker")
    status: StepStatus = Field(..., description="Latest reported status")
    details: str = Field("", description="Latest human readable detail")
    logs: List[str] = Field(default_factory=list, description="Raw output lines, append-only")


class StepError(_CamelModel):
    """Error or warning recorded against a pipeline step."""
    step: str
    error: str


class StepOutcome(BaseModel):
    """Successful reconciler result, optionally with soft warnings."""
    details: str = ""
    warnings: List[str] = Field(default_factory=list)
    url: str = Field("", description="Endpoint produced or discovered by the step, if any")
    resource_id: str = Field("", description="Provider id of the resource the step ensured, if any")


class DeploymentUrls(_CamelModel):
    """Public endpoints produced by a run."""
    compute_url: str = ""
    static_url: str = ""
    bucket_public_url: str = ""


class DeploymentHistoryEntry(_CamelModel):
    """Historical record of one run, persisted by the history store."""
    timestamp: datetime = Field(..., description="Run start time (UTC)")
    end_time: Optional[datetime] = Field(None, description="Run end time (UTC)")
    status: str = Field(..., description="success or failed")
    results: DeploymentUrls = Field(default_factory=DeploymentUrls)
    errors: Optional[List[StepError]] = Field(None, description="Step errors and warnings, if any")
    steps: List[StepRecord] = Field(default_factory=list, description="Ordered step log")


class DeploymentResult(_CamelModel):
    """Output of one DeploymentEngine.deploy call."""
    success: bool
    compute_url: str = ""
    static_url: str = ""
    bucket_public_url: str = ""
    error: Optional[str] = Field(None, description="Top-level error for fatal failures")
    errors: Optional[List[StepError]] = Field(None, description="Absent when no step reported an error")
    history: Optional[DeploymentHistoryEntry] = None
