from .base import LivenessProbe
from .probes import PidProbe, SocketProbe, ssh_pid_from_auth_sock
from .manage import load_probe

__all__ = ["LivenessProbe", "PidProbe", "SocketProbe", "ssh_pid_from_auth_sock", "load_probe"]
