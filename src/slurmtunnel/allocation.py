"""
Allocate (or reuse) the Slurm job backing a tunnelled session.

The login host runs a small composite script: reuse a live job with the same
name and owner if there is one, otherwise run the alias's RemoteCommand (the
salloc request) unmodified. Either way it finishes by reporting the running
job's id and node list. Facts travel back on stderr as tagged lines::

    SLURMTUNNEL reused=1 job_id=12345
    SLURMTUNNEL job_id=12345 node=node[3-4]

The scheduler's own "Granted job allocation" banner and a bare ``NODE:`` line
are still understood when the tags are missing.
"""

import re
import shlex
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger

from slurmtunnel.errors import TransportError
from slurmtunnel.nodes import extract_prefix_and_number
from slurmtunnel.profile import ConnectionProfile

MARKER_TAG = "SLURMTUNNEL"
GRANTED_RE = re.compile(r"Granted job allocation (\d+)")
LEGACY_NODE_RE = re.compile(r"NODE: ([A-Za-z0-9_.\-\[\],]+)")


@dataclass(frozen=True)
class AllocationRequest:
    job_name: str
    requested_resources: str
    target_user: str

    @classmethod
    def from_profile(cls, profile: ConnectionProfile) -> "AllocationRequest":
        return cls(
            job_name=profile.job_name,
            requested_resources=profile.remote_command,
            target_user=profile.user,
        )


@dataclass(frozen=True)
class AllocationResult:
    job_id: Optional[int] = None
    node: Optional[str] = None
    reused: bool = False
    raw_node: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.job_id is not None and bool(self.node)


def _squeue_filters(request: AllocationRequest) -> str:
    user = shlex.quote(request.target_user) if request.target_user else '"$USER"'
    return f"--user={user} --name={shlex.quote(request.job_name)}"


def build_allocation_script(request: AllocationRequest) -> str:
    filters = _squeue_filters(request)
    lines = [
        f"FOUND_JOB=$(squeue {filters} --states=R,PD -h -O JobID | awk 'NR==1 {{print $1}}')",
        'if [ -n "$FOUND_JOB" ]; then',
        f'  >&2 echo "{MARKER_TAG} reused=1 job_id=$FOUND_JOB"',
        "else",
        f"  {request.requested_resources}",
        f'  >&2 echo "{MARKER_TAG} reused=0"',
        "fi",
        f">&2 echo \"{MARKER_TAG} $(squeue {filters} --states=R -h -o 'job_id=%i node=%N' | head -n 1)\"",
    ]
    return "\n".join(lines)


def _parse_tags(line: str) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for token in line.split()[1:]:
        key, sep, value = token.partition("=")
        if sep and value:
            tags[key] = value
    return tags


def parse_allocation_output(text: str) -> AllocationResult:
    tags: Dict[str, str] = {}
    for line in (text or "").splitlines():
        line = line.strip()
        if line.startswith(MARKER_TAG + " ") or line == MARKER_TAG:
            # later lines win: the closing report describes the running job
            tags.update(_parse_tags(line))

    job_id_text = tags.get("job_id")
    if not job_id_text:
        match = GRANTED_RE.search(text or "")
        job_id_text = match.group(1) if match else None

    raw_node = tags.get("node")
    if not raw_node:
        match = LEGACY_NODE_RE.search(text or "")
        raw_node = match.group(1) if match else None

    job_id = int(job_id_text) if job_id_text and job_id_text.isdigit() else None
    node = extract_prefix_and_number(raw_node) if raw_node else ""

    return AllocationResult(
        job_id=job_id,
        node=node or None,
        reused=tags.get("reused") == "1",
        raw_node=raw_node,
    )


class AllocationOrchestrator:
    def __init__(self, executor, config):
        self.executor = executor
        self.config = config

    def build_args(self, profile: ConnectionProfile, script: str, connect_timeout: int) -> list:
        args = [
            "-o", f"StrictHostKeyChecking={self.config.strict_host_key_checking}",
            "-o", f"ConnectTimeout={connect_timeout}",
        ]
        if profile.identity_file:
            args += ["-i", profile.identity_file]
        args += [profile.login_target, script]
        return args

    def allocate(self, profile: ConnectionProfile, connect_timeout: int) -> AllocationResult:
        request = AllocationRequest.from_profile(profile)
        if not request.job_name:
            logger.warning(f"[{profile.alias}] ⚠ No -J/--job-name in RemoteCommand, existing jobs cannot be reused")

        script = build_allocation_script(request)
        logger.debug(f"[{profile.alias}] Allocation script:\n{script}")
        logger.info(f"[{profile.alias}] 🔧 Requesting allocation '{request.job_name}' on {profile.login_target}")

        result = self.executor.run_capture_stderr(self.build_args(profile, script, connect_timeout))
        output = result.stderr or ""
        for line in output.splitlines():
            logger.debug(f"[{profile.alias}] remote: {line}")

        if result.returncode != 0:
            logger.error(f"[{profile.alias}] ✗ Allocation ssh to {profile.login_target} failed with code {result.returncode}")
            raise TransportError(result.returncode)

        allocation = parse_allocation_output(output)
        if allocation.ok:
            verb = "Reusing" if allocation.reused else "Granted"
            logger.info(f"[{profile.alias}] ✓ {verb} job {allocation.job_id} on {allocation.node}")
        else:
            logger.error(
                f"[{profile.alias}] ✗ Could not determine allocation "
                f"(job_id={allocation.job_id}, node={allocation.raw_node})"
            )
        return allocation
