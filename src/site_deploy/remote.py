"""
Remote command channel over SSH.

Commands are run through the OpenSSH client. One master connection is opened
per deployment (ControlMaster) and every command is multiplexed over it, so a
deployment authenticates once.
"""
import logging
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

from site_deploy.exceptions import RemoteChannelError
from site_deploy.models import CommandResult

logger = logging.getLogger(__name__)

# ssh exits with 255 for its own (transport) errors.
SSH_TRANSPORT_ERROR = 255


class RemoteChannel(Protocol):
    """A connection to one host that can run commands in order."""

    host: str

    def __enter__(self) -> "RemoteChannel": ...

    def __exit__(self, exc_type, exc, tb) -> None: ...

    def run(self, command: List[str]) -> CommandResult: ...


class SSHChannel:
    """Run commands on a remote host over a single SSH connection."""

    def __init__(
        self,
        host: str,
        user: str = "ec2-user",
        key_path: Optional[str] = None,
        port: int = 22,
        connect_timeout: int = 30,
        strict_host_key_checking: bool = True,
    ):
        if not host:
            raise ValueError("SSH host must not be empty")
        self.host = host
        self.user = user
        self.key_path = key_path
        self.port = port
        self.connect_timeout = connect_timeout
        self.strict_host_key_checking = strict_host_key_checking

        self._control_dir: Optional[Path] = None

    @classmethod
    def from_settings(cls, host: str, settings) -> "SSHChannel":
        return cls(
            host=host,
            user=settings.ssh_user,
            key_path=settings.ssh_key_path,
            port=settings.ssh_port,
            connect_timeout=settings.ssh_connect_timeout,
            strict_host_key_checking=settings.ssh_strict_host_key_checking,
        )

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    @property
    def control_path(self) -> Optional[Path]:
        return self._control_dir / "master.sock" if self._control_dir else None

    @property
    def is_open(self) -> bool:
        return self._control_dir is not None

    def _base_args(self) -> List[str]:
        args = [
            "ssh",
            "-p", str(self.port),
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.connect_timeout}",
            "-o", f"StrictHostKeyChecking={'yes' if self.strict_host_key_checking else 'accept-new'}",
        ]
        if self.key_path:
            args += ["-i", str(self.key_path)]
        if self.control_path:
            args += ["-o", f"ControlPath={self.control_path}"]
        return args

    def _invoke(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(args, capture_output=True, text=True)
        except FileNotFoundError:
            raise RemoteChannelError(self.host, "ssh client not found on PATH") from None

    def open(self) -> "SSHChannel":
        """Open the master connection."""
        if self.is_open:
            return self

        self._control_dir = Path(tempfile.mkdtemp(prefix="site-deploy-ssh-"))
        args = self._base_args() + [
            "-M", "-N", "-f",
            "-o", "ControlPersist=yes",
            self.destination,
        ]

        logger.info(f"Opening SSH connection to {self.destination}")
        try:
            result = self._invoke(args)
        except RemoteChannelError:
            self._discard_control_dir()
            raise

        if result.returncode != 0:
            self._discard_control_dir()
            raise RemoteChannelError(self.host, result.stderr.strip() or f"exit code {result.returncode}")

        return self

    def run(self, command: List[str]) -> CommandResult:
        """Run one command on the remote host.

        A non-zero exit of the remote command is returned, not raised; only
        failures of the SSH transport itself raise RemoteChannelError.
        """
        if not self.is_open:
            raise RemoteChannelError(self.host, "channel is not open")

        remote_command = shlex.join(command)
        logger.debug(f"[{self.host}] $ {remote_command}")
        result = self._invoke(self._base_args() + [self.destination, remote_command])

        if result.returncode == SSH_TRANSPORT_ERROR:
            raise RemoteChannelError(self.host, result.stderr.strip() or "connection lost")

        return CommandResult(
            command=list(command),
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    def close(self) -> None:
        """Close the master connection."""
        if not self.is_open:
            return

        try:
            result = self._invoke(self._base_args() + ["-O", "exit", self.destination])
            if result.returncode != 0:
                logger.warning(f"SSH master to {self.host} did not exit cleanly: {result.stderr.strip()}")
            else:
                logger.info(f"Closed SSH connection to {self.destination}")
        finally:
            self._discard_control_dir()

    def _discard_control_dir(self) -> None:
        if self._control_dir:
            shutil.rmtree(self._control_dir, ignore_errors=True)
        self._control_dir = None

    def connection_command(self) -> str:
        """Generate the SSH command an operator can use to reach the host."""
        key = f"-i {self.key_path} " if self.key_path else ""
        return f"ssh {key}-p {self.port} {self.destination}"

    def __enter__(self) -> "SSHChannel":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
