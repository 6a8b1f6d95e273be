# marketplace/services/side_effects.py
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Tuple

from marketplace.core.config import settings
from marketplace.core.exceptions import SideEffectFailure

logger = logging.getLogger(__name__)

SideEffect = Tuple[str, Callable[[], object]]


class SideEffectRunner:
    """
    Runs post-commit side effects on a thread pool and waits for them only up
    to ``timeout`` seconds. Failures are logged, never raised.
    """

    def __init__(
        self,
        executor: Optional[ThreadPoolExecutor] = None,
        timeout: Optional[float] = None,
    ):
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.side_effect_workers,
            thread_name_prefix="settlement-side-effect",
        )
        self.timeout = timeout if timeout is not None else settings.side_effect_timeout_seconds

    def run(self, effects: List[SideEffect]) -> List[str]:
        """Returns the names of effects that failed or did not finish in time."""
        futures = {}
        for name, effect in effects:
            future = self.executor.submit(effect)
            future.add_done_callback(self._log_failure(name))
            futures[future] = name

        done, not_done = wait(futures, timeout=self.timeout)
        for future in not_done:
            logger.warning(
                f"Side effect '{futures[future]}' still running after {self.timeout}s"
            )

        unfinished = [futures[f] for f in not_done]
        failed = [futures[f] for f in done if f.exception() is not None]
        return failed + unfinished

    @staticmethod
    def _log_failure(name: str):
        def callback(future: Future) -> None:
            exc = future.exception()
            if exc is not None:
                failure = SideEffectFailure(name, exc)
                logger.warning(failure.message, exc_info=exc)

        return callback

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
