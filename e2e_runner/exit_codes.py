"""Process exit codes for the e2e CLI."""

from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    TEST_FAILURE = 1
    CONFIG_ERROR = 2
    CONNECTION_ERROR = 3
    VALIDATION_ERROR = 4
    TIMEOUT = 5
    FATAL = 127


_CODE_MAP = {
    "CONFIG_ERROR": ExitCode.CONFIG_ERROR,
    "CONNECTION_ERROR": ExitCode.CONNECTION_ERROR,
    "VALIDATION_ERROR": ExitCode.VALIDATION_ERROR,
    "LOADER_ERROR": ExitCode.VALIDATION_ERROR,
    "TIMEOUT_ERROR": ExitCode.TIMEOUT,
    "ASSERTION_ERROR": ExitCode.TEST_FAILURE,
    "ADAPTER_ERROR": ExitCode.TEST_FAILURE,
    "EXECUTION_ERROR": ExitCode.TEST_FAILURE,
    "INTERPOLATION_ERROR": ExitCode.TEST_FAILURE,
}


def error_code_to_exit_code(code: str) -> ExitCode:
    """Map an error code to the process exit code."""
    return _CODE_MAP.get(code, ExitCode.FATAL)


def exit_code_for_result(result) -> ExitCode:
    """Exit code for a finished suite run."""
    return ExitCode.SUCCESS if result.success else ExitCode.TEST_FAILURE
