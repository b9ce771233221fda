"""Shared fixtures: a recording ssh executor and a simulated login host."""

import json
import os
import re
import shutil
import stat
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from slurmtunnel.config import TunnelConfig

VSCODE_DUMP = """\
user alice
hostname login.cluster.example.org
port 22
identityfile ~/.ssh/id_ed25519
identityfile ~/.ssh/id_rsa
remotecommand salloc --no-shell -n 1 -c 4 -J vscode --time=1:00:00
"""

PLAIN_DUMP = """\
user alice
hostname login.cluster.example.org
port 22
identityfile ~/.ssh/id_ed25519
"""


class RecordingExecutor:
    """Stands in for SSHExecutor and records every ssh invocation."""

    def __init__(self, dump=VSCODE_DUMP, alloc_stderr="", alloc_returncode=0, session_returncode=0,
                 passthrough_returncode=0):
        self.dump = dump
        self.alloc_stderr = alloc_stderr
        self.alloc_returncode = alloc_returncode
        self.session_returncode = session_returncode
        self.passthrough_returncode = passthrough_returncode
        self.calls = []

    def kinds(self):
        return [kind for kind, _ in self.calls]

    def args_of(self, kind):
        return [args for k, args in self.calls if k == kind]

    def dump_config(self, alias):
        self.calls.append(("dump", [alias]))
        return subprocess.CompletedProcess(["ssh", "-G", alias], 0, stdout=self.dump, stderr="")

    def allocation_stderr(self, script):
        return self.alloc_stderr

    def run_capture_stderr(self, args):
        self.calls.append(("allocate", list(args)))
        stderr = self.allocation_stderr(args[-1])
        return subprocess.CompletedProcess(args, self.alloc_returncode, stdout=None, stderr=stderr)

    def run_interactive(self, args):
        self.calls.append(("session", list(args)))
        return self.session_returncode

    def passthrough(self, argv):
        self.calls.append(("passthrough", list(argv)))
        return self.passthrough_returncode


class SimulatedLoginHost(RecordingExecutor):
    """Answers the allocation script the way a Slurm login host would.

    ``jobs`` maps (user, job name) to (job id, node list) for live jobs.
    """

    def __init__(self, jobs=None, next_job=(12345, "node3"), **kwargs):
        super().__init__(**kwargs)
        self.jobs = dict(jobs or {})
        self.next_job = next_job
        self.submissions = []

    def allocation_stderr(self, script):
        user = re.search(r"--user=(\S+)", script).group(1)
        name = re.search(r"--name=(\S+)", script).group(1)
        key = (user, name)
        if key in self.jobs:
            job_id, node = self.jobs[key]
            return f"SLURMTUNNEL reused=1 job_id={job_id}\nSLURMTUNNEL job_id={job_id} node={node}\n"
        self.submissions.append(script)
        job_id, node = self.next_job
        self.jobs[key] = (job_id, node)
        return (
            "salloc: Pending job allocation 12345\n"
            f"salloc: Granted job allocation {job_id}\n"
            "SLURMTUNNEL reused=0\n"
            f"SLURMTUNNEL job_id={job_id} node={node}\n"
        )


@pytest.fixture
def config(tmp_path):
    cfg = TunnelConfig(ssh_binary="/usr/bin/ssh", ssh_config_file=str(tmp_path / "ssh_config"), stdin_timeout=0.05)
    cfg.watcher.marker_dir = str(tmp_path)
    return cfg


@pytest.fixture
def closed_stdin():
    """A pipe whose write end is already closed: reads hit EOF at once."""
    read_fd, write_fd = os.pipe()
    os.close(write_fd)
    yield read_fd
    os.close(read_fd)


# =============================================================================
# Fake Slurm binaries for running the generated bash for real
# =============================================================================

FAKE_SQUEUE = """\
import json, os, sys
args = sys.argv[1:]
opts, fields, fmt = {}, None, None
i = 0
while i < len(args):
    arg = args[i]
    if arg.startswith("--user="):
        opts["user"] = arg.split("=", 1)[1]
    elif arg.startswith("--name="):
        opts["name"] = arg.split("=", 1)[1]
    elif arg.startswith("--states="):
        opts["states"] = arg.split("=", 1)[1].split(",")
    elif arg == "-O":
        fields = args[i + 1]
        i += 1
    elif arg == "-o":
        fmt = args[i + 1]
        i += 1
    i += 1
with open(os.environ["FAKE_SLURM_JOBS"]) as f:
    jobs = json.load(f)
for job in jobs:
    if job["user"] != opts.get("user") or job["name"] != opts.get("name"):
        continue
    if "states" in opts and job["state"] not in opts["states"]:
        continue
    if fmt:
        print(fmt.replace("%i", str(job["id"])).replace("%N", job["node"]))
    elif fields == "JobID":
        print(str(job["id"]).ljust(20))
    elif fields == "NodeList":
        print(job["node"].ljust(20))
"""

FAKE_SALLOC = """\
import json, os, sys
with open(os.environ["FAKE_SALLOC_CALLS"], "a") as f:
    f.write(" ".join(sys.argv[1:]) + "\\n")
if os.environ.get("FAKE_SALLOC_FAIL"):
    print("salloc: error: Job submit/allocate failed: Invalid account", file=sys.stderr)
    sys.exit(1)
args = sys.argv[1:]
name = args[args.index("-J") + 1] if "-J" in args else "salloc"
path = os.environ["FAKE_SLURM_JOBS"]
with open(path) as f:
    jobs = json.load(f)
jobs.append({"id": 12345, "user": os.environ["FAKE_SLURM_USER"], "name": name, "state": "R", "node": "node[3-4]"})
with open(path, "w") as f:
    json.dump(jobs, f)
print("salloc: Granted job allocation 12345", file=sys.stderr)
"""

FAKE_SCANCEL = """\
import os, sys
with open(os.environ["FAKE_SCANCEL_CALLS"], "a") as f:
    f.write(" ".join(sys.argv[1:]) + "\\n")
"""


class FakeSlurm:
    def __init__(self, root: Path):
        self.bin_dir = root / "bin"
        self.bin_dir.mkdir()
        self.jobs_path = root / "jobs.json"
        self.salloc_calls = root / "salloc_calls"
        self.scancel_calls = root / "scancel_calls"
        self.jobs_path.write_text("[]")
        self.salloc_calls.write_text("")
        self.scancel_calls.write_text("")
        for name, body in (("squeue", FAKE_SQUEUE), ("salloc", FAKE_SALLOC), ("scancel", FAKE_SCANCEL)):
            path = self.bin_dir / name
            path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def add_job(self, job_id, user, name, state, node):
        jobs = json.loads(self.jobs_path.read_text())
        jobs.append({"id": job_id, "user": user, "name": name, "state": state, "node": node})
        self.jobs_path.write_text(json.dumps(jobs))

    def salloc_invocations(self):
        return [line for line in self.salloc_calls.read_text().splitlines() if line]

    def scancel_invocations(self):
        return [line for line in self.scancel_calls.read_text().splitlines() if line]

    def env(self, user="alice", **extra):
        env = dict(os.environ)
        env.update({
            "PATH": f"{self.bin_dir}{os.pathsep}{env.get('PATH', '')}",
            "FAKE_SLURM_JOBS": str(self.jobs_path),
            "FAKE_SALLOC_CALLS": str(self.salloc_calls),
            "FAKE_SCANCEL_CALLS": str(self.scancel_calls),
            "FAKE_SLURM_USER": user,
        })
        env.update(extra)
        return env

    def run_bash(self, script, **env_extra):
        return subprocess.run(["bash", "-c", script], env=self.env(**env_extra),
                              capture_output=True, text=True, timeout=30)


@pytest.fixture
def fake_slurm(tmp_path):
    if shutil.which("bash") is None:
        pytest.skip("bash not available")
    return FakeSlurm(tmp_path)
