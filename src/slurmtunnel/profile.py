"""
Resolve an ssh alias into the handful of fields the orchestrator needs.

Resolution goes through ``ssh -G`` so Include, Match and wildcard Host blocks are
evaluated by ssh itself rather than re-implemented here.
"""

import re
import shlex
from dataclasses import dataclass
from typing import Dict, List

from loguru import logger

from slurmtunnel.errors import ProfileResolutionIncomplete

PROFILE_FIELDS = ("user", "hostname", "remotecommand", "identityfile")
JOB_NAME_FALLBACK_RE = re.compile(r"(?:-J\s*|--job-name[=\s]+)([^\s;&|]+)")


@dataclass(frozen=True)
class ConnectionProfile:
    alias: str
    user: str = ""
    hostname: str = ""
    identity_file: str = ""
    remote_command: str = ""

    @property
    def job_name(self) -> str:
        return extract_job_name(self.remote_command)

    @property
    def login_target(self) -> str:
        host = self.hostname or self.alias
        return f"{self.user}@{host}" if self.user else host

    def node_target(self, node: str) -> str:
        return f"{self.user}@{node}" if self.user else node

    def requests_allocation(self, allocation_command: str = "salloc") -> bool:
        return bool(allocation_command) and allocation_command in self.remote_command

    def missing_fields(self) -> List[str]:
        values = {
            "user": self.user,
            "hostname": self.hostname,
            "remotecommand": self.remote_command,
            "identityfile": self.identity_file,
        }
        return [key for key in PROFILE_FIELDS if not values[key]]


def parse_ssh_config_dump(text: str) -> Dict[str, str]:
    """Parse ``ssh -G`` output into a key -> first value mapping"""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        key, _, value = line.partition(" ")
        key = key.lower()
        # identityfile and friends may repeat; ssh tries them in order
        if key not in values:
            values[key] = value.strip()
    return values


def extract_job_name(command: str) -> str:
    """Return the Slurm job name requested by ``command`` or an empty string"""
    if not command:
        return ""
    try:
        args = shlex.split(command)
    except ValueError:
        match = JOB_NAME_FALLBACK_RE.search(command)
        return match.group(1) if match else ""

    for i, arg in enumerate(args):
        if arg.startswith("--job-name="):
            return arg.split("=", 1)[1]
        if arg == "--job-name" and i + 1 < len(args):
            return args[i + 1]
        if arg.startswith("-J"):
            if arg == "-J":
                return args[i + 1] if i + 1 < len(args) else ""
            return arg[2:]
    return ""


def resolve_profile(alias: str, executor) -> ConnectionProfile:
    result = executor.dump_config(alias)
    if result.returncode != 0:
        logger.warning(f"⚠ ssh -G {alias} failed ({result.returncode}): {(result.stderr or '').strip()}")
        values: Dict[str, str] = {}
    else:
        values = parse_ssh_config_dump(result.stdout or "")
    if values.get("remotecommand", "").lower() == "none":
        values["remotecommand"] = ""

    profile = ConnectionProfile(
        alias=alias,
        user=values.get("user", ""),
        hostname=values.get("hostname", ""),
        identity_file=values.get("identityfile", ""),
        remote_command=values.get("remotecommand", ""),
    )

    missing = profile.missing_fields()
    if missing:
        # remotecommand is legitimately absent for plain aliases
        level = "DEBUG" if missing == ["remotecommand"] else "WARNING"
        logger.log(level, f"[{alias}] {ProfileResolutionIncomplete.__name__}: missing {', '.join(missing)}")

    logger.debug(
        f"[{alias}] user={profile.user} hostname={profile.hostname} "
        f"identityfile={profile.identity_file} remotecommand={profile.remote_command} "
        f"job_name={profile.job_name}"
    )
    return profile
