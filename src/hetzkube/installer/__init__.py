"""Installation orchestrator for hetzkube."""

from .bootstrap import control_plane_steps, run_steps, setup_control_plane, setup_worker, worker_steps

__all__ = [
    "setup_control_plane",
    "setup_worker",
    "control_plane_steps",
    "worker_steps",
    "run_steps",
]
