import os
import shutil
import subprocess
from typing import Optional

from loguru import logger

from slurmtunnel.core.base import LivenessProbe


def ssh_pid_from_auth_sock(auth_sock: Optional[str]) -> Optional[int]:
    """sshd names forwarded agent sockets ``/tmp/ssh-XXXX/agent.<pid>``"""
    if not auth_sock:
        return None
    parts = os.path.basename(auth_sock).split(".")
    if len(parts) < 2 or not parts[1].isdigit():
        return None
    return int(parts[1])


class SocketProbe(LivenessProbe):
    """Alive while an established tcp connection of the editor's server is open"""

    name = "socket"

    def __init__(self, process_pattern: str = "code", uid: Optional[int] = None, ss_binary: Optional[str] = None):
        self.process_pattern = process_pattern
        self.uid = os.getuid() if uid is None else uid
        self.ss_binary = ss_binary or shutil.which("ss") or "ss"

    def matches(self, ss_output: str) -> bool:
        uid_token = f"uid:{self.uid}"
        for line in ss_output.splitlines():
            if "tcp" in line and "ESTAB" in line and self.process_pattern in line and uid_token in line.split():
                return True
        return False

    def _alive(self) -> bool:
        try:
            result = subprocess.run([self.ss_binary, "-a", "-p", "-n", "-e"], capture_output=True, text=True)
        except OSError as e:
            # Without ss there is nothing to watch; treat the client as gone
            logger.warning(f"⚠ Failed to run {self.ss_binary}: {e}")
            return False
        return self.matches(result.stdout or "")

    def describe(self) -> str:
        return f"socket({self.process_pattern}, uid={self.uid})"


class PidProbe(LivenessProbe):
    """Alive while the given process exists"""

    name = "pid"

    def __init__(self, pid: int):
        self.pid = pid

    def _alive(self) -> bool:
        try:
            os.kill(self.pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # exists, owned by someone else
            return True
        return True

    def describe(self) -> str:
        return f"pid({self.pid})"
