"""Running external commands."""

import os
import pwd
import shlex
import shutil
import socket
import subprocess
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from hetzkube.errors import CommandError, PreflightError
from hetzkube.log import log


def run_command(
    cmd: Sequence[str],
    *,
    check: bool = True,
    input: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    capture: bool = True,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run a command and return the result.

    ``env`` entries are added on top of the current environment. With
    ``capture=False`` the command writes straight to the terminal, which is
    used for long-running tools such as kubeadm and apt-get.
    """
    cmd = [str(c) for c in cmd]
    log.debug(f"Running: {' '.join(cmd)}")

    run_env = None
    if env:
        run_env = os.environ.copy()
        run_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            input=input,
            env=run_env,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        raise CommandError(cmd, 127, message=f"Command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise CommandError(cmd, 124, message=f"Command timed out: {' '.join(cmd)}")

    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, (result.stderr or "").strip())

    return result


def output(result: subprocess.CompletedProcess) -> str:
    """Combined stdout+stderr of a captured result."""
    return (result.stdout or "") + (result.stderr or "")


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def require_root() -> None:
    if os.geteuid() != 0:
        raise PreflightError("Please run as root (sudo)")


def require_command(name: str, hints: Sequence[str] = ()) -> None:
    if not command_exists(name):
        raise PreflightError(f"{name} is not installed", hints)


def hostname() -> str:
    return socket.gethostname()


def sudo_user_home() -> Tuple[str, Path]:
    """User that invoked sudo (or the current user) and their home directory."""
    user = os.environ.get("SUDO_USER") or os.environ.get("USER") or "root"
    try:
        home = Path(pwd.getpwnam(user).pw_dir)
    except KeyError:
        home = Path(os.path.expanduser(f"~{user}"))
    return user, home


def run_as_user(user: str, cmd: Sequence[str], **kwargs) -> subprocess.CompletedProcess:
    """Run a command through a login shell of ``user`` (su -)."""
    if user == "root":
        return run_command(cmd, **kwargs)
    return run_command(["su", "-", user, "-c", " ".join(shlex.quote(str(c)) for c in cmd)], **kwargs)


def write_root_file(path: Path, content: str, mode: Optional[int] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    if mode is not None:
        path.chmod(mode)
    log.debug(f"Wrote {path}")
