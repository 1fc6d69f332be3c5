class PipelineError(Exception):
    """Base class for errors surfaced to a session as a failed run."""


class InputValidationError(PipelineError):
    """The submitted job data is missing or empty."""


class ProcessStartError(PipelineError):
    """A stage process could not be launched."""


class ProcessExecutionError(PipelineError):
    """A stage process exited non-zero and logged at least one error line."""


class WorkspaceError(PipelineError):
    """Creating run directories or persisting the job input failed."""


class SessionBusyError(PipelineError):
    """A job is already running for this session id."""
