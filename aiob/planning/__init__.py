"""
AIOB planning module.

This module turns a task description into an ordered execution plan.
"""

from aiob.planning.analyzer import ExecutionPlan, Step, Task, TaskAnalyzer

__all__ = ["ExecutionPlan", "Step", "Task", "TaskAnalyzer"]
