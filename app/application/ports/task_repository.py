"""Automation task repository port (the Task Store)."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from app.domain.entities.automation_task import AutomationTask, StepName, TaskStatus


class TaskRepository(ABC):
    """Port interface for the durable task store."""

    @abstractmethod
    async def add(self, task: AutomationTask) -> bool:
        """
        Insert a task unless an active task with the same dedupe key exists.

        Args:
            task: Task to insert

        Returns:
            True if inserted, False if an equivalent pending/executing task
            already exists for the lead
        """
        pass

    @abstractmethod
    async def get(self, task_id: str) -> Optional[AutomationTask]:
        """
        Get a task by id.

        Args:
            task_id: Task identifier

        Returns:
            Task, or None if not found
        """
        pass

    @abstractmethod
    async def list_for_lead(self, lead_id: str) -> list[AutomationTask]:
        """
        List every task of a lead ordered by scheduled time.

        Args:
            lead_id: Lead identifier

        Returns:
            Tasks of the lead
        """
        pass

    @abstractmethod
    async def list_due(self, now: datetime, limit: int) -> list[AutomationTask]:
        """
        List pending tasks whose scheduled time has passed, oldest first.

        Args:
            now: Reference time
            limit: Maximum rows to return

        Returns:
            Due tasks
        """
        pass

    @abstractmethod
    async def claim(self, task_id: str, now: datetime, tracking_id: str) -> bool:
        """
        Move a task from pending to executing.

        Args:
            task_id: Task identifier
            now: Claim time, stored as executed_at
            tracking_id: Correlation token of the claiming cycle

        Returns:
            True if this caller won the claim
        """
        pass

    @abstractmethod
    async def complete(self, task_id: str, result: dict[str, Any], now: datetime) -> None:
        """
        Mark an executing task completed and record its result.

        Args:
            task_id: Task identifier
            result: Step result stored under metadata.result
            now: Completion time
        """
        pass

    @abstractmethod
    async def fail(self, task_id: str, error_message: str, now: datetime) -> None:
        """
        Mark an executing task failed.

        Args:
            task_id: Task identifier
            error_message: Failure description
            now: Failure time
        """
        pass

    @abstractmethod
    async def complete_and_reschedule(
        self,
        task_id: str,
        result: dict[str, Any],
        successor: AutomationTask,
        now: datetime,
    ) -> bool:
        """
        Complete a task and insert its successor in one transaction.

        Args:
            task_id: Task being completed
            result: Step result of the completed task
            successor: New pending task
            now: Completion time

        Returns:
            False (and no successor) if the task was no longer executing
        """
        pass

    @abstractmethod
    async def cancel_pending(
        self,
        lead_id: str,
        step_name: StepName,
        meeting_id: Optional[str] = None,
        tracking_id: Optional[str] = None,
    ) -> int:
        """
        Cancel pending tasks of a step for a lead.

        Args:
            lead_id: Lead identifier
            step_name: Step to cancel
            meeting_id: Restrict reminder cancellation to one meeting
            tracking_id: Correlation token written to the cancelled rows

        Returns:
            Number of rows cancelled
        """
        pass

    @abstractmethod
    async def exists_with_key(
        self,
        lead_id: str,
        dedupe_key: str,
        statuses: tuple[TaskStatus, ...],
    ) -> bool:
        """
        Check for a task with the dedupe key in any of the given statuses.

        Args:
            lead_id: Lead identifier
            dedupe_key: Task dedupe key
            statuses: Statuses to match

        Returns:
            True if such a task exists
        """
        pass
