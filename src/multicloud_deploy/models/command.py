"""
Pydantic models for external command execution results.
"""
from enum import Enum  # Crear enumeraciones con valores fijos
from typing import Optional  # Type hints para tipos opcionales

from pydantic import BaseModel, Field  # BaseModel: clase base para modelos, Field: validación de campos


class ErrorCategory(str, Enum):
    """Closed set of failure categories assigned where process output is parsed."""
    NETWORK = "network"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    TERMINAL = "terminal"

    @property
    def retryable(self) -> bool:
        return self is ErrorCategory.NETWORK


class CommandResult(BaseModel):
    """Outcome of one Command Executor invocation (all attempts included)."""
    command: str = Field(..., description="Command line that was executed")
    success: bool = Field(..., description="True if the final attempt exited with code 0")
    stdout: str = Field("", description="Captured standard output")
    stderr: str = Field("", description="Captured standard error")
    exit_code: Optional[int] = Field(None, description="Process exit code, None if it never started")
    attempt: int = Field(1, description="1-based number of the attempt that produced this result")
    error: Optional[str] = Field(None, description="Error message if the command failed")
    category: Optional[ErrorCategory] = Field(None, description="Failure category, None on success")
    timed_out: bool = Field(False, description="True if the final attempt hit its timeout")

    @property
    def output(self) -> str:
        return self.stdout

    @property
    def combined_output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)
