"""Pipeline run manager -- one in-flight run per user, newest request wins.

A new request for a user cancels that user's previous run before starting.
The superseded caller gets a PipelineResult with status "cancelled".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..schemas import Holding, PipelineResult, RabbitMode
from .deps import PipelineDeps
from .orchestrator import run_pipeline

logger = logging.getLogger(__name__)


@dataclass
class PipelineRun:
    """State for a single pipeline execution."""
    user_id: str
    task: asyncio.Task
    mode: str
    status: str = "running"  # running | completed | cancelled | failed
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)


class RunManager:
    """Tracks the active run per user and supersedes stale ones."""

    def __init__(self, deps: Optional[PipelineDeps] = None):
        self.deps = deps
        self._runs: Dict[str, PipelineRun] = {}

    def get_run(self, user_id: str) -> Optional[PipelineRun]:
        return self._runs.get(user_id)

    @property
    def active_users(self) -> List[str]:
        return [u for u, r in self._runs.items() if r.status == "running"]

    async def run(
        self,
        user_id: str,
        holdings: Sequence[Holding],
        interests: Sequence[str] = (),
        mode: RabbitMode = RabbitMode.SMART,
        limit: Optional[int] = None,
    ) -> PipelineResult:
        """Run the pipeline for `user_id`, cancelling any run already in flight for them.

        Raises:
            NoDataAvailableError: propagated from the pipeline
        """
        previous = self._runs.get(user_id)
        if previous is not None and not previous.task.done():
            logger.info(f"[RUN] Superseding in-flight run for {user_id}")
            previous.status = "cancelled"
            previous.task.cancel()

        mode = RabbitMode(mode)
        task = asyncio.create_task(run_pipeline(
            holdings, interests, mode=mode, limit=limit, deps=self.deps, user_id=user_id,
        ))
        run = PipelineRun(user_id=user_id, task=task, mode=mode.value)
        self._runs[user_id] = run

        try:
            result = await task
        except asyncio.CancelledError:
            run.completed_at = datetime.now(timezone.utc)
            if run.status != "cancelled":
                # Our own caller was cancelled, not superseded
                run.status = "cancelled"
                task.cancel()
                raise
            logger.info(f"[RUN] Run for {user_id} cancelled by a newer request")
            return PipelineResult(run_id="cancelled", user_id=user_id, mode=mode.value, status="cancelled")
        except Exception as e:
            run.status = "failed"
            run.errors.append(str(e))
            run.completed_at = datetime.now(timezone.utc)
            raise

        run.status = "completed"
        run.completed_at = datetime.now(timezone.utc)
        return result
