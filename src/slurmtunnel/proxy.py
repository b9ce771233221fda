"""
Entry point of the ssh wrapper.

``run`` decides between plain pass-through and the allocation flow and is the
only place where errors become exit codes.
"""

import sys
from typing import List, Optional

from loguru import logger

from slurmtunnel.allocation import AllocationOrchestrator
from slurmtunnel.config import TunnelConfig, load_config
from slurmtunnel.errors import AllocationParseError, ConfigError, TransportError
from slurmtunnel.invocation import parse_invocation
from slurmtunnel.launcher import Session, SessionLauncher, read_stdin_commands
from slurmtunnel.log import configure_logging
from slurmtunnel.profile import resolve_profile
from slurmtunnel.ssh_executor import SSHExecutor, build_executor

# ssh's own exit code for connection-level failures
ALLOCATION_FAILURE_EXIT_CODE = 255


def run(
    argv: List[str],
    config: Optional[TunnelConfig] = None,
    executor: Optional[SSHExecutor] = None,
    stdin_fd: Optional[int] = None,
) -> int:
    if config is None:
        try:
            config = load_config()
        except ConfigError as e:
            configure_logging(debug=False)
            logger.error(f"✗ Invalid slurmtunnel config: {e}")
            return ALLOCATION_FAILURE_EXIT_CODE
    configure_logging(config.debug, config.log_file)

    if executor is None:
        try:
            executor = build_executor(config)
        except ConfigError as e:
            logger.error(f"✗ {e}")
            return ALLOCATION_FAILURE_EXIT_CODE

    invocation = parse_invocation(argv)
    logger.debug(
        f"argv={list(invocation.argv)} port={invocation.port} "
        f"connect_timeout={invocation.connect_timeout} host={invocation.host_alias}"
    )

    if invocation.version_query or not invocation.host_alias:
        return executor.passthrough(argv)

    profile = resolve_profile(invocation.host_alias, executor)
    if not profile.requests_allocation(config.allocation_command):
        logger.debug(f"[{profile.alias}] No {config.allocation_command} in RemoteCommand, executing ssh normally")
        return executor.passthrough(argv)

    stdin_commands = read_stdin_commands(
        sys.stdin.fileno() if stdin_fd is None else stdin_fd,
        config.stdin_timeout,
    )
    connect_timeout = invocation.connect_timeout or config.connect_timeout

    try:
        allocation = AllocationOrchestrator(executor, config).allocate(profile, connect_timeout)
        session = Session(
            port=invocation.port,
            connect_timeout=connect_timeout,
            profile=profile,
            allocation=allocation,
        )
        return SessionLauncher(executor, config).launch(session, stdin_commands)
    except TransportError as e:
        return e.returncode
    except AllocationParseError as e:
        logger.error(f"✗ {e}")
        return ALLOCATION_FAILURE_EXIT_CODE
