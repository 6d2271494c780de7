"""clipops: declarative video editing driven by ffmpeg.

Describe one edit (trim, merge, replace a segment, add a transition, ...)
as an immutable OperationRequest and hand it to VideoEditor, which builds
the ffmpeg invocations, runs them, and cleans up every temporary file.
"""

from .editor import BatchResult, ExtractedFrame, OutputResult, Scene, VideoEditor
from .errors import (
    ClipOpsError,
    ExecutionError,
    OutputLimitExceeded,
    PartialPipelineFailure,
    ProcessTimeoutError,
    SourceFetchError,
    SourceNotFoundError,
    SourceResolutionError,
    ToolUnavailable,
    ValidationError,
)
from .operations import OperationRequest, parse_request
from .progress import ProgressEvent
