"""Stage runner shared by every workflow orchestrator.

An orchestrator invocation is a linear list of named stages. Each stage
either appends to actions_executed or, if it raises a CharityFlowError,
appends to errors and lets later independent stages run. A stage marked
required aborts the rest of the invocation when it fails.

Missing definitions (WorkflowError) end the invocation with success=False.
Anything else is a programmer error and propagates to the dispatcher.

Usage:
    with WorkflowRun("newsletter") as run:
        members = run.step("Failed to load subscribers", store.list_newsletter_subscribers,
                           required=True)
        run.action(f"Retrieved {len(members)} newsletter subscribers")
    return run.finish()
"""

from typing import Any, Callable, Optional, TypeVar

from charityflow.core.exceptions import CharityFlowError, WorkflowError
from charityflow.core.logging import get_logger
from charityflow.db.models import ScheduledTask, WorkflowResult

logger = get_logger(__name__)

T = TypeVar("T")


class StageAborted(Exception):
    """A required stage failed; the remaining stages are skipped."""


class WorkflowRun:
    """Collects the outcome of one orchestrator invocation.

    Attributes:
        workflow: Workflow name for logs
        context: Structured log context (member_id, event, ...)
        result: The WorkflowResult being built
    """

    def __init__(self, workflow: str, **context: Any):
        self.workflow = workflow
        self.context = {"workflow": workflow, **context}
        self.result = WorkflowResult()

    def __enter__(self) -> "WorkflowRun":
        logger.info(f"Starting {self.workflow} workflow", extra={"context": self.context})
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            return False
        if issubclass(exc_type, StageAborted):
            return True
        if issubclass(exc_type, WorkflowError):
            self.result.fail(str(exc))
            logger.warning(
                f"{self.workflow} workflow failed: {exc}",
                extra={"context": self.context},
            )
            return True
        return False

    def step(
        self,
        failure: str,
        func: Callable[..., T],
        *args: Any,
        required: bool = False,
        default: Optional[T] = None,
        **kwargs: Any,
    ) -> Optional[T]:
        """Run one stage.

        Args:
            failure: Error prefix recorded if the stage raises
            func: Stage callable
            *args: Positional arguments for func
            required: Abort the invocation if the stage fails
            default: Value returned when a non-required stage fails
            **kwargs: Keyword arguments for func

        Returns:
            The stage's return value, or default on failure
        """
        try:
            return func(*args, **kwargs)
        except WorkflowError:
            raise
        except CharityFlowError as e:
            message = f"{failure}: {e}"
            self.result.errors.append(message)
            stage = getattr(func, "__name__", "stage")
            logger.warning(message, extra={"context": {**self.context, "stage": stage}})
            if required:
                raise StageAborted(message) from e
            return default

    def action(self, description: str) -> None:
        self.result.actions_executed.append(description)

    def schedule(self, tasks: list[ScheduledTask]) -> None:
        self.result.scheduled_tasks.extend(tasks)

    def skip(self, reason: str) -> WorkflowResult:
        """End as a soft skip (success, nothing scheduled)."""
        logger.info(
            f"{self.workflow} workflow skipped: {reason}",
            extra={"context": self.context},
        )
        return self.result.skip(reason)

    def finish(self) -> WorkflowResult:
        """Close the run; success is False if any stage failed."""
        self.result.finish()
        logger.info(
            f"Finished {self.workflow} workflow",
            extra={
                "context": {
                    **self.context,
                    "success": self.result.success,
                    "actions": len(self.result.actions_executed),
                    "tasks": len(self.result.scheduled_tasks),
                    "errors": len(self.result.errors),
                }
            },
        )
        return self.result
