"""Exception taxonomy for clipops.

Every error raised by the library derives from ClipOpsError. A few also
derive from the builtin they specialize (ValueError, FileNotFoundError,
TimeoutError) so callers written against plain Python exceptions keep
working.
"""


class ClipOpsError(Exception):
    """Base class for all clipops errors."""


class ToolUnavailable(ClipOpsError):
    """ffmpeg could not be located. The message carries install guidance."""


class ValidationError(ClipOpsError, ValueError):
    """A request is malformed or its parameters are out of range."""


class SourceResolutionError(ClipOpsError):
    """A media reference could not be turned into a local file."""


class SourceNotFoundError(SourceResolutionError, FileNotFoundError):
    pass


class SourceFetchError(SourceResolutionError):
    pass


class ExecutionError(ClipOpsError):
    """An ffmpeg invocation failed.

    Attributes:
        exit_code: Process exit status, or None if the process was killed.
        stderr_tail: Last lines of the diagnostic stream.
        command: The argv that was run.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr_tail: str = "",
        command: list[str] | None = None,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.command = list(command or [])

    def __str__(self):
        base = super().__str__()
        if self.stderr_tail:
            return f"{base}\n{self.stderr_tail}"
        return base


class OutputLimitExceeded(ExecutionError):
    """The process wrote more than the configured output cap."""


class ProcessTimeoutError(ExecutionError, TimeoutError):
    """The process did not finish before its deadline and was killed."""


class PartialPipelineFailure(ExecutionError):
    """A multi-stage operation failed after at least one stage succeeded.

    Attributes:
        stage: Name of the stage that failed.
        completed_stages: Names of the stages that finished before it.
    """

    def __init__(self, stage: str, completed_stages: list[str], cause: ExecutionError):
        super().__init__(
            f"Stage '{stage}' failed after {', '.join(completed_stages)}: "
            f"{cause.args[0] if cause.args else cause}",
            exit_code=cause.exit_code,
            stderr_tail=cause.stderr_tail,
            command=cause.command,
        )
        self.stage = stage
        self.completed_stages = list(completed_stages)
