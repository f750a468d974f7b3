"""
Provider CLI execution with timeouts, failure classification and retry.

Every wrangler/gcloud invocation goes through CommandExecutor. Failures are
classified exactly once, here, into an ErrorCategory; callers branch on the
category and never re-parse error strings.
"""
import asyncio  # Subprocesos asíncronos y timeouts
import inspect  # Detectar callbacks asíncronos
import os  # Variables de entorno del proceso
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple  # Type hints

from ..exceptions import CommandExecutionError  # Excepción con el CommandResult adjunto
from ..models.command import CommandResult, ErrorCategory  # Resultado y categorías de error
from .logging import get_logger  # Logger estructurado

logger = get_logger(__name__)

LineCallback = Callable[[str, str], Any]

NETWORK_SIGNATURES = (
    "econnreset",
    "etimedout",
    "enotfound",
    "econnrefused",
    "eai_again",
    "socket hang up",
    "connection reset",
    "connection refused",
    "connection timed out",
    "request timed out",
    "read timed out",
    "operation timed out",
    "command timed out",
    "network error",
    "network is unreachable",
    "temporary failure in name resolution",
    "getaddrinfo",
    "tls handshake timeout",
    "fetch failed",
)

AUTHENTICATION_SIGNATURES = (
    "authentication error",
    "code: 10000",
    "not logged in",
    "reauthentication",
    "auth tokens",
    "you must be logged in",
    "cannot prompt during non-interactive",
)

ALREADY_EXISTS_SIGNATURES = (
    "already exists",
    "already in use",
    "already enabled",
    "duplicate",
)

NOT_FOUND_SIGNATURES = (
    "not found",
    "does not exist",
    "no such",
    "could not find",
)

# Shell exit codes for "command not found" / "not executable"
MISSING_BINARY_EXIT_CODES = (126, 127)

STREAM_CHUNK_SIZE = 64 * 1024


def classify_failure(text: str, exit_code: Optional[int] = None) -> ErrorCategory:
    """
    Map raw failure output to an ErrorCategory.

    Args:
        text: Error message and stderr of the failed attempt (not stdout)
        exit_code: Process exit code if the process ran

    Returns:
        The failure category (only NETWORK is retryable)
    """
    if exit_code in MISSING_BINARY_EXIT_CODES:
        return ErrorCategory.TERMINAL

    lowered = (text or "").lower()

    if any(sig in lowered for sig in NETWORK_SIGNATURES):
        return ErrorCategory.NETWORK
    if any(sig in lowered for sig in AUTHENTICATION_SIGNATURES):
        return ErrorCategory.AUTHENTICATION
    if any(sig in lowered for sig in ALREADY_EXISTS_SIGNATURES):
        return ErrorCategory.ALREADY_EXISTS
    if any(sig in lowered for sig in NOT_FOUND_SIGNATURES):
        return ErrorCategory.NOT_FOUND
    return ErrorCategory.TERMINAL


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, so callbacks may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


async def gather_queries(*queries: Awaitable[Any]) -> Tuple[Any, ...]:
    """
    Run independent read-only queries concurrently and join their results.

    Only for queries with no ordering dependency between them; mutating
    commands always run one at a time.
    """
    return tuple(await asyncio.gather(*queries))


class CommandExecutor:
    """Runs shell commands with timeout, classification and exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
        default_timeout: float = 60.0,
        terminate_grace: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize command executor.

        Args:
            max_retries: Default retries for network-class failures
            base_retry_delay: Base delay in seconds; attempt n waits base * 2**n
            default_timeout: Timeout in seconds when a call does not pass one
            terminate_grace: Seconds between terminate and kill on timeout
            sleep: Awaitable sleep used between retries (injectable for tests)
        """
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay
        self.default_timeout = default_timeout
        self.terminate_grace = terminate_grace
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings) -> "CommandExecutor":
        return cls(
            max_retries=settings.max_retries,
            base_retry_delay=settings.base_retry_delay,
            default_timeout=settings.mutation_timeout,
            terminate_grace=settings.terminate_grace,
        )

    async def execute(
        self,
        command: str,
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        silent_output: bool = True,
        throw_on_error: bool = False,
        max_retries: Optional[int] = None,
        base_retry_delay: Optional[float] = None,
    ) -> CommandResult:
        """
        Run a command to completion, buffering its output.

        Args:
            command: Shell command line
            cwd: Working directory
            timeout: Per-attempt timeout in seconds
            env: Extra environment variables merged over os.environ
            silent_output: If False, every output line is also logged
            throw_on_error: Raise CommandExecutionError instead of returning a failed result
            max_retries: Override retries for network-class failures
            base_retry_delay: Override base backoff delay

        Returns:
            CommandResult of the final attempt

        Raises:
            CommandExecutionError: If the command fails and throw_on_error is set
        """
        async def attempt() -> CommandResult:
            return await self._run_buffered(command, cwd, timeout, env, silent_output)

        return await self._run_with_retries(
            command, attempt, throw_on_error, max_retries, base_retry_delay
        )

    async def execute_interactive(
        self,
        command: str,
        on_line: Optional[LineCallback] = None,
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        throw_on_error: bool = False,
        max_retries: Optional[int] = None,
        base_retry_delay: Optional[float] = None,
    ) -> CommandResult:
        """
        Run a command and stream its output line by line while it runs.

        Args:
            command: Shell command line
            on_line: Callback(line, stream) where stream is "stdout" or "stderr";
                may be a coroutine function
            cwd, timeout, env, throw_on_error, max_retries, base_retry_delay:
                Same as execute()

        Returns:
            CommandResult of the final attempt, with the full captured output
        """
        async def attempt() -> CommandResult:
            return await self._run_streaming(command, on_line, cwd, timeout, env)

        return await self._run_with_retries(
            command, attempt, throw_on_error, max_retries, base_retry_delay
        )

    async def _run_with_retries(
        self,
        command: str,
        attempt_fn: Callable[[], Awaitable[CommandResult]],
        throw_on_error: bool,
        max_retries: Optional[int],
        base_retry_delay: Optional[float],
    ) -> CommandResult:
        retries = self.max_retries if max_retries is None else max_retries
        base_delay = self.base_retry_delay if base_retry_delay is None else base_retry_delay

        attempt = 0
        while True:
            result = await attempt_fn()
            result.attempt = attempt + 1

            if result.success:
                if attempt:
                    logger.info("command_succeeded_after_retry", command=command, attempt=result.attempt)
                return result

            if result.category.retryable and attempt < retries:
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    "command_retry_scheduled",
                    command=command,
                    attempt=result.attempt,
                    delay_seconds=delay,
                    error=result.error,
                )
                await self._sleep(delay)
                attempt += 1
                continue

            logger.error(
                "command_failed",
                command=command,
                attempt=result.attempt,
                category=result.category.value,
                exit_code=result.exit_code,
                error=result.error,
                stderr=result.stderr[-2000:],
            )

            if throw_on_error:
                raise CommandExecutionError(
                    result.error or f"Command failed: {command}",
                    result=result,
                    context={"command": command, "category": result.category.value},
                )
            return result

    def _build_env(self, env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not env:
            return None
        return {**os.environ, **env}

    async def _spawn(self, command: str, cwd: Optional[str], env: Optional[Dict[str, str]]):
        return await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=self._build_env(env),
        )

    async def _run_buffered(
        self,
        command: str,
        cwd: Optional[str],
        timeout: Optional[float],
        env: Optional[Dict[str, str]],
        silent_output: bool,
    ) -> CommandResult:
        timeout = timeout or self.default_timeout
        logger.debug("command_started", command=command, cwd=cwd, timeout=timeout)

        try:
            process = await self._spawn(command, cwd, env)
        except OSError as e:
            return self._failed(command, error=str(e))

        try:
            raw_out, raw_err = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            return self._failed(
                command,
                error=f"Command timed out after {timeout} seconds",
                exit_code=process.returncode,
                timed_out=True,
            )

        stdout = raw_out.decode("utf-8", errors="replace")
        stderr = raw_err.decode("utf-8", errors="replace")

        if not silent_output:
            for line in stdout.splitlines():
                logger.info("command_output", command=command, stream="stdout", line=line)
            for line in stderr.splitlines():
                logger.info("command_output", command=command, stream="stderr", line=line)

        return self._completed(command, process.returncode, stdout, stderr)

    async def _run_streaming(
        self,
        command: str,
        on_line: Optional[LineCallback],
        cwd: Optional[str],
        timeout: Optional[float],
        env: Optional[Dict[str, str]],
    ) -> CommandResult:
        timeout = timeout or self.default_timeout
        logger.debug("command_started", command=command, cwd=cwd, timeout=timeout, streaming=True)

        try:
            process = await self._spawn(command, cwd, env)
        except OSError as e:
            return self._failed(command, error=str(e))

        stdout_lines = []
        stderr_lines = []

        async def emit(raw: bytes, name: str, sink: list) -> None:
            line = raw.decode("utf-8", errors="replace").rstrip("\r")
            sink.append(line)
            if on_line is not None:
                await maybe_await(on_line(line, name))

        async def pump(stream, name, sink):
            # Chunked reads; readline() fails on lines longer than the stream limit
            pending = b""
            while True:
                chunk = await stream.read(STREAM_CHUNK_SIZE)
                if not chunk:
                    break
                *complete, pending = (pending + chunk).split(b"\n")
                for raw in complete:
                    await emit(raw, name, sink)
            if pending:
                await emit(pending, name, sink)

        pumps = [
            asyncio.ensure_future(pump(process.stdout, "stdout", stdout_lines)),
            asyncio.ensure_future(pump(process.stderr, "stderr", stderr_lines)),
        ]
        try:
            await asyncio.wait_for(asyncio.gather(*pumps, process.wait()), timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            return self._failed(
                command,
                error=f"Command timed out after {timeout} seconds",
                stdout="\n".join(stdout_lines),
                stderr="\n".join(stderr_lines),
                exit_code=process.returncode,
                timed_out=True,
            )
        finally:
            # No-op once the process has exited
            await self._terminate(process)
            for task in pumps:
                task.cancel()

        return self._completed(
            command, process.returncode, "\n".join(stdout_lines), "\n".join(stderr_lines)
        )

    async def _terminate(self, process) -> None:
        """Send terminate, then kill if the process outlives the grace window."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), self.terminate_grace)
        except asyncio.TimeoutError:
            logger.warning("command_kill_after_grace", pid=process.pid, grace=self.terminate_grace)
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    def _completed(self, command: str, exit_code: int, stdout: str, stderr: str) -> CommandResult:
        if exit_code == 0:
            return CommandResult(
                command=command,
                success=True,
                stdout=stdout,
                stderr=stderr,
                exit_code=0,
            )

        message = (stderr.strip() or stdout.strip() or f"Command exited with code {exit_code}")
        return self._failed(
            command,
            error=message.splitlines()[-1] if message else None,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            category=classify_failure(stderr, exit_code),
        )

    def _failed(
        self,
        command: str,
        error: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: Optional[int] = None,
        timed_out: bool = False,
        category: Optional[ErrorCategory] = None,
    ) -> CommandResult:
        if timed_out:
            category = ErrorCategory.NETWORK
        elif category is None:
            category = classify_failure("\n".join((error or "", stderr)), exit_code)
        return CommandResult(
            command=command,
            success=False,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            error=error,
            category=category,
            timed_out=timed_out,
        )
