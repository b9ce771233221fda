#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
SSH Executor Module

This module drives the local ssh binary: config dumps, the allocation hop and
the final interactive session all go through here.
"""

import shlex
import subprocess
from typing import List, Optional

from loguru import logger


class SSHExecutor:
    """Run the ssh binary with the user's ssh config"""

    def __init__(self, ssh_binary: str, config_file: str, verbose: bool = False):
        """Initialize SSH executor"""
        self.ssh_binary = ssh_binary
        self.config_file = config_file
        self.verbose = verbose

    def base_command(self) -> List[str]:
        return [self.ssh_binary, "-F", self.config_file]

    def dump_config(self, alias: str) -> subprocess.CompletedProcess:
        """Evaluate the ssh config for an alias (``ssh -G``)"""
        cmd = self.base_command() + ["-G", alias]
        if self.verbose:
            logger.debug(f"🔧 Resolving ssh config: {shlex.join(cmd)}")
        return subprocess.run(cmd, capture_output=True, text=True, stdin=subprocess.DEVNULL)

    def run_capture_stderr(self, args: List[str]) -> subprocess.CompletedProcess:
        """Run ssh with stdout passed through live and stderr captured.

        stdin is detached so the remote command cannot swallow input meant for
        the session that follows.
        """
        cmd = self.base_command() + list(args)
        if self.verbose:
            logger.debug(f"🔧 Executing: {shlex.join(cmd)}")
        result = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=None,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        if self.verbose:
            logger.debug(f"✅ Command completed with return code: {result.returncode}")
        return result

    def run_interactive(self, args: List[str]) -> int:
        """Run ssh attached to this process's stdio and return its exit code"""
        cmd = self.base_command() + list(args)
        if self.verbose:
            logger.debug(f"🚀 Executing: {shlex.join(cmd)}")
        result = subprocess.run(cmd)
        if self.verbose:
            logger.debug(f"✅ ssh exited with return code: {result.returncode}")
        return result.returncode

    def passthrough(self, argv: List[str]) -> int:
        """Forward the caller's ssh arguments untouched"""
        return self.run_interactive(list(argv))


def build_executor(config, verbose: Optional[bool] = None) -> SSHExecutor:
    return SSHExecutor(
        ssh_binary=config.resolve_ssh_binary(),
        config_file=config.resolve_ssh_config_file(),
        verbose=config.debug if verbose is None else verbose,
    )
