# TREESCOUT v2.0 - Error taxonomy


class DeployError(Exception):
    '''Base class for every error the deployer reports to the operator'''

    exit_code = 1


class ConfigurationError(DeployError):
    '''Invalid input detected before any side effect'''

    exit_code = 2


class InteractiveInputRequired(ConfigurationError):
    '''A decision with no safe default was needed but no terminal is attached'''


class OperatorAbort(DeployError):
    '''The operator declined or cancelled. Not a failure of the tool.'''

    def __init__(self, message="Aborted by user.", exit_code=1):
        super().__init__(message)
        self.exit_code = exit_code


class CommandFailed(DeployError):
    '''An essential external command returned non-zero'''

    def __init__(self, step, result=None, hint=None):
        self.step = step
        self.result = result
        self.hint = hint
        message = f"{step} failed"
        if result is not None:
            message += f" (exit code {result.returncode})"
        super().__init__(message)


class ReadinessTimeout(CommandFailed):
    '''A readiness check ran out of attempts'''

    def __init__(self, step, attempts, hint=None):
        self.attempts = attempts
        super().__init__(step, hint=hint)
        self.args = (f"{step} did not become ready after {attempts} attempts",)
