"""
Parse the argument vector the editor hands to ssh.

VS Code Remote-SSH typically runs ``ssh -v -T -D <port> -o ConnectTimeout=60 <alias> bash``.
Only the fields the orchestrator consumes are extracted; the full argv is kept
for pass-through.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

VERSION_FLAG = "-V"
SHELL_MARKER = "bash"


@dataclass(frozen=True)
class Invocation:
    argv: Tuple[str, ...]
    version_query: bool = False
    port: Optional[str] = None
    connect_timeout: Optional[int] = None
    host_alias: Optional[str] = None


def _option_value(argv: List[str], index: int, flag: str) -> Optional[str]:
    arg = argv[index]
    if arg == flag:
        return argv[index + 1] if index + 1 < len(argv) else None
    return arg[len(flag):]


def _connect_timeout(option: str) -> Optional[int]:
    key, sep, value = option.partition("=")
    if not sep or key.strip().lower() != "connecttimeout":
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_invocation(argv: List[str]) -> Invocation:
    argv = list(argv)
    port = None
    connect_timeout = None

    for i, arg in enumerate(argv):
        if arg.startswith("-D"):
            value = _option_value(argv, i, "-D")
            if value:
                port = value
        elif arg.startswith("-o"):
            value = _option_value(argv, i, "-o")
            if value and _connect_timeout(value) is not None:
                connect_timeout = _connect_timeout(value)

    host_alias = None
    if argv:
        host_alias = argv[-1]
        if host_alias == SHELL_MARKER:
            host_alias = argv[-2] if len(argv) > 1 else None
    if host_alias is not None and host_alias.startswith("-"):
        host_alias = None

    return Invocation(
        argv=tuple(argv),
        version_query=VERSION_FLAG in argv,
        port=port,
        connect_timeout=connect_timeout,
        host_alias=host_alias,
    )
