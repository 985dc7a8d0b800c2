"""
Scheduler module for automated sourcing.
"""
from .jobs import setup_scheduler, shutdown_scheduler, run_sourcer_job

__all__ = ["setup_scheduler", "shutdown_scheduler", "run_sourcer_job"]
