"""Exceptions raised by hetzkube operations"""

from typing import List, Optional, Sequence


class HetzkubeError(Exception):
    """Base exception for hetzkube errors

    ``hints`` are remediation lines shown to the operator below the message.
    """

    def __init__(self, message: str, hints: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.message = message
        self.hints: List[str] = list(hints or [])


class CommandError(HetzkubeError):
    """External command failed or could not be started"""

    def __init__(
        self,
        cmd: Sequence[str],
        returncode: int,
        stderr: str = "",
        message: Optional[str] = None,
        hints: Optional[Sequence[str]] = None,
    ):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            message or f"Command failed ({returncode}): {' '.join(self.cmd)}",
            hints,
        )


class ValidationError(HetzkubeError):
    """Invalid operator input"""

    pass


class PreflightError(HetzkubeError):
    """Node is not in the state required to continue"""

    pass


class RestoreError(HetzkubeError):
    """etcd snapshot restore failed (after rollback)"""

    pass


class Cancelled(HetzkubeError):
    """Operator declined a confirmation prompt"""

    def __init__(self, message: str = "Cancelled", exit_code: int = 0):
        super().__init__(message)
        self.exit_code = exit_code
