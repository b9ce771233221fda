"""
Exceptions raised while orchestrating a tunnelled session.

Only TransportError and AllocationParseError ever reach the process exit code;
stale watcher pids and cancelling an already finished job are absorbed where
they happen.
"""


class SlurmTunnelError(Exception):
    """Base class for all SlurmTunnel errors"""


class ConfigError(SlurmTunnelError, ValueError):
    """Invalid configuration value"""


class ProfileResolutionIncomplete(UserWarning):
    """One or more ssh profile fields could not be resolved.

    Never raised: the resolver logs it and hands empty values downstream, which
    fail at the point where the value is actually needed.
    """


class AllocationParseError(SlurmTunnelError):
    """The allocation step did not report both a job id and a node."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class TransportError(SlurmTunnelError):
    """An ssh invocation exited non-zero."""

    def __init__(self, returncode: int, message: str = ""):
        super().__init__(message or f"ssh exited with code {returncode}")
        self.returncode = returncode
