"""
Liveness watcher for an allocated job.

The watcher lives on the compute node next to the session and walks through

    STARTING -> ARMED -> MONITORING -> DRAINING -> RELEASED

STARTING evicts any previous watcher of the same user (the per-user marker file
names it) and records itself. ARMED waits out the editor's start-up. MONITORING
polls the liveness probe once per interval. DRAINING is a grace timer so a quick
reconnect does not lose the allocation; a reconnect starts a new watcher which
evicts this one. RELEASED cancels the job and removes the marker.

Only one watcher per user and login host is authoritative: the most recently
started session wins. The marker is guarded by an advisory lock so the
evict-and-record step is atomic, but sessions are not made multi-tenant.

The same machine is rendered as a bash fragment (runtime "shell") for clusters
where slurmtunnel is not installed on the nodes, or run in Python through
``slurmtunnel watch`` (runtime "python").
"""

import fcntl
import os
import re
import shlex
import signal
import subprocess
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

MARKER_PREFIX = ".slurmtunnel_watcher_"
SAFE_USER_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class WatcherState(str, Enum):
    STARTING = "starting"
    ARMED = "armed"
    MONITORING = "monitoring"
    DRAINING = "draining"
    RELEASED = "released"


@dataclass(frozen=True)
class WatcherSettings:
    job_id: int
    user: str
    strategy: str = "socket"
    grace_period: int = 300
    arm_delay: int = 120
    poll_interval: int = 1
    marker_dir: str = "$HOME"
    process_pattern: str = "code"
    ssh_pid: Optional[int] = None

    @classmethod
    def from_config(cls, watcher_config, job_id: int, user: str, ssh_pid: Optional[int] = None) -> "WatcherSettings":
        return cls(
            job_id=job_id,
            user=user,
            strategy=watcher_config.strategy,
            grace_period=watcher_config.grace_period,
            arm_delay=watcher_config.arm_delay,
            poll_interval=watcher_config.poll_interval,
            marker_dir=watcher_config.marker_dir,
            process_pattern=watcher_config.process_pattern,
            ssh_pid=ssh_pid,
        )


def marker_name(user: str) -> str:
    safe = SAFE_USER_RE.sub("-", user or "").strip(".-") or "default"
    return f"{MARKER_PREFIX}{safe}"


class WatcherMarker:
    """Per-user pid file naming the authoritative watcher"""

    def __init__(self, marker_dir: str, user: str):
        base = Path(os.path.expanduser(os.path.expandvars(marker_dir)))
        self.path = base / marker_name(user)
        self.lock_path = base / (marker_name(user) + ".lock")

    @contextmanager
    def _locked(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a+") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def read(self) -> Optional[int]:
        try:
            first = self.path.read_text().splitlines()[0].strip()
        except (OSError, IndexError):
            return None
        return int(first) if first.isdigit() else None

    def claim(self, pid: int, kill: Callable[[int, int], None] = os.kill) -> Optional[int]:
        """Evict the previous watcher and record ``pid``; returns the evicted pid"""
        with self._locked():
            previous = self.read()
            evicted = None
            if previous is not None and previous != pid:
                try:
                    kill(previous, signal.SIGKILL)
                    evicted = previous
                    logger.info(f"Evicted previous watcher {previous}")
                except ProcessLookupError:
                    logger.debug(f"Previous watcher {previous} already gone")
                except PermissionError:
                    logger.warning(f"⚠ Not allowed to signal previous watcher {previous}")
            self.path.write_text(f"{pid}\n")
        return evicted

    def release(self, pid: int) -> bool:
        """Remove the marker if it still names ``pid``"""
        with self._locked():
            if self.read() != pid:
                return False
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
        return True


def cancel_job(job_id: int, scancel: str = "scancel") -> bool:
    try:
        result = subprocess.run([scancel, str(job_id)], capture_output=True, text=True)
    except OSError as e:
        logger.warning(f"⚠ Failed to run {scancel}: {e}")
        return False
    if result.returncode != 0:
        # The job may already be finished or cancelled externally
        logger.debug(f"{scancel} {job_id} exited {result.returncode}: {(result.stderr or '').strip()}")
        return False
    logger.info(f"✓ Cancelled job {job_id}")
    return True


class LivenessWatcher:
    def __init__(
        self,
        settings: WatcherSettings,
        probe,
        cancel: Callable[[int], object],
        marker: WatcherMarker,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        pid: Optional[int] = None,
    ):
        self.settings = settings
        self.probe = probe
        self.cancel = cancel
        self.marker = marker
        self.clock = clock
        self.sleep = sleep
        self.pid = os.getpid() if pid is None else pid
        self.state = WatcherState.STARTING
        self.absent_since: Optional[float] = None
        self.released_at: Optional[float] = None

    def _transition(self, state: WatcherState):
        logger.debug(f"[job {self.settings.job_id}] watcher {self.state.value} -> {state.value}")
        self.state = state

    def _start(self):
        self.marker.claim(self.pid)
        self._transition(WatcherState.ARMED)

    def _arm(self):
        if self.settings.arm_delay > 0:
            self.sleep(self.settings.arm_delay)
        self._transition(WatcherState.MONITORING)

    def _monitor(self):
        if self.probe.alive():
            self.sleep(self.settings.poll_interval)
            return
        self.absent_since = self.clock()
        logger.info(f"[job {self.settings.job_id}] client gone, releasing in {self.settings.grace_period}s")
        self._transition(WatcherState.DRAINING)

    def _drain(self):
        remaining = self.settings.grace_period - (self.clock() - self.absent_since)
        if remaining > 0:
            self.sleep(min(remaining, self.settings.poll_interval))
            return
        self._release()

    def _release(self):
        self.cancel(self.settings.job_id)
        self.marker.release(self.pid)
        self.released_at = self.clock()
        self._transition(WatcherState.RELEASED)

    def step(self) -> WatcherState:
        handlers = {
            WatcherState.STARTING: self._start,
            WatcherState.ARMED: self._arm,
            WatcherState.MONITORING: self._monitor,
            WatcherState.DRAINING: self._drain,
        }
        handler = handlers.get(self.state)
        if handler is not None:
            handler()
        return self.state

    def run(self) -> WatcherState:
        logger.info(f"[job {self.settings.job_id}] watching {self.probe.describe()}")
        while self.state is not WatcherState.RELEASED:
            self.step()
        return self.state


def _shell_probe(settings: WatcherSettings) -> str:
    if settings.strategy == "socket":
        pattern = shlex.quote(settings.process_pattern)
        return (
            f'"$SS_LOC" -a -p -n -e 2>/dev/null | grep -F {pattern} | grep tcp | grep ESTAB '
            f'| grep -qw "uid:$(id -u)"'
        )
    return 'kill -0 "$ssh_pid" 2>/dev/null'


def _shell_watcher(settings: WatcherSettings) -> list:
    return [
        f'WATCHER_MARKER="{settings.marker_dir}/{marker_name(settings.user)}"',
        "(",
        "  # starting",
        '  exec 9>"$WATCHER_MARKER.lock"',
        "  command -v flock >/dev/null 2>&1 && flock -x 9",
        '  prev=$(head -n 1 "$WATCHER_MARKER" 2>/dev/null)',
        '  if [ -n "$prev" ] && [ "$prev" != "$BASHPID" ]; then kill -9 "$prev" 2>/dev/null; fi',
        '  echo "$BASHPID" > "$WATCHER_MARKER"',
        "  exec 9>&-",
        "  # armed",
        f"  sleep {settings.arm_delay}",
        "  # monitoring",
        f"  while {_shell_probe(settings)}; do sleep {settings.poll_interval}; done",
        "  # draining",
        f"  sleep {settings.grace_period}",
        "  # released",
        f"  scancel {settings.job_id} >/dev/null 2>&1",
        '  if [ "$(head -n 1 "$WATCHER_MARKER" 2>/dev/null)" = "$BASHPID" ]; then rm -f "$WATCHER_MARKER"; fi',
        "  exit 0",
        ") >/dev/null 2>&1 </dev/null &",
    ]


def _python_watcher(settings: WatcherSettings, python: str) -> list:
    args = [
        python, "-m", "slurmtunnel", "watch",
        "--job-id", str(settings.job_id),
        "--user", settings.user,
        "--strategy", settings.strategy,
        "--grace-period", str(settings.grace_period),
        "--arm-delay", str(settings.arm_delay),
        "--poll-interval", str(settings.poll_interval),
        "--process-pattern", settings.process_pattern,
    ]
    command = shlex.join(args)
    return [
        # the watcher takes the ssh pid from SSH_AUTH_SOCK itself
        f'nohup {command} --marker-dir "{settings.marker_dir}" >/dev/null 2>&1 </dev/null &',
    ]


def render_watcher_bootstrap(
    settings: WatcherSettings,
    runtime: str = "shell",
    shell: str = "/bin/bash",
    python: str = "python3",
) -> str:
    """Bash run inside the job step: detach the watcher, then become a login shell"""
    lines = [
        'export ssh_pid=$(echo "$SSH_AUTH_SOCK" | cut -d"." -f2)',
        "export SS_LOC=$(command -v ss 2>/dev/null)",
    ]
    if runtime == "python":
        lines += _python_watcher(settings, python)
    else:
        lines += _shell_watcher(settings)
    lines += [
        "disown -h",
        f"exec {shlex.quote(shell)} --login",
    ]
    return "\n".join(lines)
