# Jobs Package - Scheduled background tasks
from .approval_sweep import ApprovalSweepScheduler, start_scheduler, stop_scheduler, run_sweep_once

__all__ = ["ApprovalSweepScheduler", "start_scheduler", "stop_scheduler", "run_sweep_once"]
