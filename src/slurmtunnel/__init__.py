"""
SlurmTunnel - on-demand Slurm allocations behind a plain ssh alias

An ssh wrapper for editors such as VS Code Remote-SSH. When the alias's
RemoteCommand is a Slurm allocation request, the wrapper:
- reuses or submits the allocation on the login host
- proxy-jumps to the allocated compute node and opens a job step there
- arms a watcher that cancels the job once the client has gone away
Any other alias is passed straight through to ssh.
"""

from .version import __version__

__author__ = "slurmtunnel contributors"
__license__ = "MIT"
__description__ = "On-demand Slurm allocations behind a plain ssh alias"

__all__ = [
    "__version__",
]
