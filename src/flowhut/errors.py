"""Error taxonomy and CLI exit codes."""

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_USAGE = 2
EXIT_NO_PRIOR_SUBMISSION = 3
EXIT_MISSING_RECIPIENT = 4
EXIT_API_ERROR = 5
EXIT_PERSISTENCE = 6
EXIT_DISPATCH = 7


class FlowHutError(Exception):
    """Base class for errors surfaced to the user with a dedicated exit code."""

    exit_code = EXIT_UNEXPECTED


class PersistenceError(FlowHutError):
    """The ledger could not be written."""

    exit_code = EXIT_PERSISTENCE


class NoSuchRecord(FlowHutError):
    """No ledger row matches the lookup."""

    exit_code = EXIT_NO_PRIOR_SUBMISSION


class NoPriorSubmission(NoSuchRecord):
    """The ledger is empty, so there is no job to default to."""

    def __init__(self, message: str = "No prior submission found. Submit a workflow first.") -> None:
        super().__init__(message)


class IndexOutOfRange(NoSuchRecord):
    """A relative reference (-n) points before the first ledger row."""


class UsageError(FlowHutError):
    """Invalid command-line input."""

    exit_code = EXIT_USAGE


class AmbiguousReference(UsageError):
    """A job id prefix matches more than one recorded job."""


class MissingRecipient(FlowHutError):
    """No usable notification recipient was given or configured."""

    exit_code = EXIT_MISSING_RECIPIENT


class ApiError(FlowHutError):
    """Transport failure, non-2xx or malformed response from the workflow server."""

    exit_code = EXIT_API_ERROR

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.transient = transient


class UnrecoverablePollError(FlowHutError):
    """The poll loop hit a permanent failure (bad host, auth, unknown job)."""

    exit_code = EXIT_API_ERROR


class DeliveryError(FlowHutError):
    """The notification message could not be delivered."""

    exit_code = EXIT_DISPATCH


class RemoteDispatchError(FlowHutError):
    """The notification worker could not be started on the remote host."""

    exit_code = EXIT_DISPATCH


class WorkerSpawnError(FlowHutError):
    """The local notification worker process could not be started."""

    exit_code = EXIT_DISPATCH


class ConfigError(FlowHutError):
    """The configuration file is missing or invalid."""
