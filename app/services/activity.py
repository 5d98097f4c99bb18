import logging
from concurrent.futures import Future, ThreadPoolExecutor

from app.models.log import LogAction
from app.tasks.activity import write_activity_log

log = logging.getLogger(__name__)

# publishing talks to the broker synchronously; it runs here, never on the event loop
_dispatch_pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="activity-dispatch")


class ActivityRecorder:
    """Fire-and-forget audit trail. Entries are queued for the worker from a
    background thread; a failed dispatch is logged and never reaches the caller."""

    def __init__(self, task=write_activity_log, executor: ThreadPoolExecutor | None = None):
        self.task = task
        self.executor = executor or _dispatch_pool

    def record(
        self,
        user_id: int,
        action: LogAction,
        details: str | None = None,
        file_id: str | None = None,
    ) -> Future:
        return self.executor.submit(self._dispatch, user_id, action, details, file_id)

    def _dispatch(self, user_id: int, action: LogAction, details: str | None, file_id: str | None) -> None:
        try:
            self.task.apply_async(
                args=(user_id, action.value, details, file_id),
                retry=False,
            )
        except Exception:
            log.exception(f"[activity] dispatch failed user={user_id} action={action.value} file={file_id}")
