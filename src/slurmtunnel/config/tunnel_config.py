from dataclasses import dataclass, field, asdict
from typing import Optional
from dacite import Config, DaciteError, from_dict
import yaml
import os
import shutil
from pathlib import Path
from loguru import logger

from slurmtunnel.errors import ConfigError

DEFAULT_CONFIG_PATH = "~/.slurmtunnel/config.yaml"
CONFIG_PATH_ENV = "SLURMTUNNEL_CONFIG"

WATCHER_STRATEGIES = ("socket", "pid")
WATCHER_RUNTIMES = ("shell", "python")

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class WatcherConfig:
    # "socket": watch for the editor's established tcp connection (useLocalServer=true)
    # "pid": watch the sshd pid taken from SSH_AUTH_SOCK (useLocalServer=false)
    strategy: str = "socket"
    runtime: str = "shell"
    grace_period: int = 300
    arm_delay: int = 120
    poll_interval: int = 1
    process_pattern: str = "code"
    marker_dir: str = "$HOME"
    python: str = "python3"


@dataclass
class TunnelConfig:
    ssh_binary: Optional[str] = None
    ssh_config_file: str = "~/.ssh/config"
    connect_timeout: int = 120
    strict_host_key_checking: str = "no"
    stdin_timeout: float = 1.0
    allocation_command: str = "salloc"
    remote_shell: str = "/bin/bash"
    debug: bool = False
    log_file: Optional[str] = None
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    def resolve_ssh_binary(self) -> str:
        if self.ssh_binary:
            return os.path.expanduser(self.ssh_binary)
        found = shutil.which("ssh")
        if not found:
            raise ConfigError("ssh binary not found on PATH, set ssh_binary in the config")
        return found

    def resolve_ssh_config_file(self) -> str:
        return os.path.expanduser(os.path.expandvars(self.ssh_config_file))

    def validate(self) -> "TunnelConfig":
        if self.watcher.strategy not in WATCHER_STRATEGIES:
            raise ConfigError(f"Unknown watcher strategy '{self.watcher.strategy}', expected one of {WATCHER_STRATEGIES}")
        if self.watcher.runtime not in WATCHER_RUNTIMES:
            raise ConfigError(f"Unknown watcher runtime '{self.watcher.runtime}', expected one of {WATCHER_RUNTIMES}")
        if self.watcher.poll_interval <= 0:
            raise ConfigError("watcher.poll_interval must be positive")
        if self.watcher.grace_period < 0 or self.watcher.arm_delay < 0:
            raise ConfigError("watcher.grace_period and watcher.arm_delay must not be negative")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout must be positive")
        if self.stdin_timeout < 0:
            raise ConfigError("stdin_timeout must not be negative")
        return self

    def apply_env(self, environ: Optional[dict] = None) -> "TunnelConfig":
        environ = os.environ if environ is None else environ
        if "SLURMTUNNEL_DEBUG" in environ:
            self.debug = environ["SLURMTUNNEL_DEBUG"].strip().lower() in _TRUE_VALUES
        if environ.get("SLURMTUNNEL_WATCHER"):
            self.watcher.strategy = environ["SLURMTUNNEL_WATCHER"].strip()
        if environ.get("SLURMTUNNEL_GRACE_PERIOD"):
            try:
                self.watcher.grace_period = int(environ["SLURMTUNNEL_GRACE_PERIOD"])
            except ValueError:
                raise ConfigError(f"SLURMTUNNEL_GRACE_PERIOD must be an integer, got {environ['SLURMTUNNEL_GRACE_PERIOD']!r}")
        if environ.get("SLURMTUNNEL_SSH_CONFIG"):
            self.ssh_config_file = environ["SLURMTUNNEL_SSH_CONFIG"]
        return self

    @classmethod
    def from_yaml(cls, path: str) -> "TunnelConfig":
        if not path.endswith((".yaml", ".yml")):
            raise ConfigError(f"Config path must end with .yaml: {path}")

        with open(path, "r") as f:
            raw_dict = yaml.safe_load(f) or {}

        if not isinstance(raw_dict, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        try:
            # yaml reads "1" where a float is expected as an int
            return from_dict(data_class=cls, data=raw_dict, config=Config(type_hooks={float: float}))
        except DaciteError as e:
            raise ConfigError(f"Invalid config file {path}: {e}")

    def to_yaml(self, path: str):
        if not path.endswith((".yaml", ".yml")):
            raise ValueError("path must end with .yaml")

        with open(path, "w") as f:
            yaml.safe_dump(asdict(self), f, sort_keys=False)

        logger.info(f"Saved config to {path}")


def default_config_path() -> str:
    return os.path.expanduser(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)


def load_config(path: Optional[str] = None, environ: Optional[dict] = None) -> TunnelConfig:
    config_path = os.path.expanduser(path) if path else default_config_path()
    if Path(config_path).exists():
        config = TunnelConfig.from_yaml(config_path)
    else:
        # The wrapper has to work for users who never ran `slurmtunnel init`
        config = TunnelConfig()
    return config.apply_env(environ).validate()


def save_config(config: TunnelConfig, path: str):
    path = os.path.expanduser(path)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    config.to_yaml(path)
