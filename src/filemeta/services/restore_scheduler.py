"""Background restore of every backed-up file.

A full restore pass runs on a coordinator thread that feeds one task per
file to a small worker pool. Shutdown is cooperative: a file whose
restore has started always finishes, files not yet started are dropped.
"""
import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from typing import Any, Callable, List, Optional

from filemeta.config import config
from filemeta.exceptions import FileMetaError, SchedulerShutdownError
from filemeta.models.schema import BackupRecord, RestoreReport, RestoreState
from filemeta.services.attribute_store import RESTORED, SKIPPED, UNCHANGED, AttributeStore

logger = logging.getLogger(__name__)


class RestoreScheduler:
    """Schedules restore and sync work on background threads.

    State machine of the full restore pass:
    IDLE -> SCHEDULED -> RUNNING -> COMPLETED | CANCELLED.
    Calls to ``restore_all`` while a pass is SCHEDULED or RUNNING return
    the future of that pass instead of starting another one.
    """

    def __init__(
        self,
        store: AttributeStore,
        max_workers: Optional[int] = None,
        shutdown_timeout: Optional[float] = None,
    ):
        self.store = store
        self.max_workers = max_workers or config.restore_workers
        self.shutdown_timeout = (
            shutdown_timeout if shutdown_timeout is not None else config.shutdown_timeout
        )
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="filemeta-worker"
        )
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._state = RestoreState.IDLE
        self._pass_future: Optional[Future] = None
        self._coordinator: Optional[threading.Thread] = None
        self._closed = False

    @property
    def state(self) -> RestoreState:
        with self._lock:
            return self._state

    @property
    def is_shut_down(self) -> bool:
        return self._closed

    def restore_all(self) -> "Future[RestoreReport]":
        """Start a full restore pass in the background.

        Returns:
            Future resolving to the RestoreReport of the pass.

        Raises:
            SchedulerShutdownError: After ``shutdown``.
        """
        with self._lock:
            if self._closed:
                raise SchedulerShutdownError()
            if self._state in (RestoreState.SCHEDULED, RestoreState.RUNNING):
                logger.debug("Restore pass already in progress, coalescing request")
                return self._pass_future
            self._state = RestoreState.SCHEDULED
            self._pass_future = Future()
            self._coordinator = threading.Thread(
                target=self._run_pass,
                args=(self._pass_future,),
                name="filemeta-restore",
                daemon=True,
            )
            self._coordinator.start()
            logger.info("Scheduled background restore of all backed-up metadata")
            return self._pass_future

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run a single unit of work (one file's step) on the worker pool.

        Raises:
            SchedulerShutdownError: After ``shutdown``.
        """
        with self._lock:
            if self._closed or self._cancel.is_set():
                raise SchedulerShutdownError()
            return self._pool.submit(fn, *args, **kwargs)

    def shutdown(self) -> Optional[RestoreReport]:
        """Cancel outstanding work and wait for in-flight steps to finish.

        Files already being restored complete so no attribute is left half
        written; queued files are dropped. Blocks at most
        ``shutdown_timeout`` seconds for the coordinator.

        Returns:
            Report of the interrupted pass, or None if no pass ran.
        """
        with self._lock:
            if self._closed:
                return None
            self._closed = True
            self._cancel.set()
            coordinator = self._coordinator
            pass_future = self._pass_future
        logger.info("Shutting down restore scheduler")
        # waits only for running tasks, queued ones are cancelled
        self._pool.shutdown(wait=True, cancel_futures=True)
        if coordinator is not None:
            coordinator.join(timeout=self.shutdown_timeout)
            if coordinator.is_alive():
                logger.warning(
                    f"Restore coordinator still running after {self.shutdown_timeout}s"
                )
        if pass_future is not None and pass_future.done():
            return pass_future.result()
        return None

    def _set_state(self, state: RestoreState) -> None:
        with self._lock:
            self._state = state

    def _run_pass(self, pass_future: Future) -> None:
        report = RestoreReport()
        try:
            if self._cancel.is_set():
                report.state = RestoreState.CANCELLED
                return
            self._set_state(RestoreState.RUNNING)
            tasks: List[Future] = []
            paths = {}
            for record in self.store.backup_store.iter_records():
                with self._lock:
                    if self._cancel.is_set():
                        break
                    task = self._pool.submit(self._restore_one, record)
                tasks.append(task)
                paths[task] = record.path

            for task in as_completed(tasks):
                path = paths[task]
                try:
                    outcome = task.result()
                except CancelledError:
                    report.dropped += 1
                    continue
                except Exception as e:
                    # One bad file never stops the pass
                    logger.warning(f"Restore of {path} failed: {e}")
                    report.failed[path] = str(e)
                    continue
                if outcome == RESTORED:
                    report.restored.append(path)
                elif outcome == UNCHANGED:
                    report.unchanged.append(path)
                elif outcome == SKIPPED:
                    report.skipped.append(path)
                else:
                    report.dropped += 1

            report.state = (
                RestoreState.CANCELLED if self._cancel.is_set() else RestoreState.COMPLETED
            )
        except FileMetaError as e:
            logger.error(f"Restore pass aborted: {e}")
            report.failed["<backup store>"] = str(e)
            report.state = (
                RestoreState.CANCELLED if self._cancel.is_set() else RestoreState.COMPLETED
            )
        except Exception as e:
            logger.error(f"Restore pass crashed: {e}", exc_info=True)
            self._set_state(RestoreState.IDLE)
            pass_future.set_exception(e)
            return
        finally:
            if not pass_future.done():
                self._set_state(report.state)
                pass_future.set_result(report)
        logger.info(
            f"Restore pass {report.state.value}: {len(report.restored)} restored, "
            f"{len(report.unchanged)} unchanged, {len(report.skipped)} skipped, "
            f"{len(report.failed)} failed, {report.dropped} dropped"
        )

    def _restore_one(self, record: BackupRecord) -> Optional[str]:
        # Checked once before starting; never interrupted mid-file
        if self._cancel.is_set():
            return None
        return self.store.restore_record(record)
