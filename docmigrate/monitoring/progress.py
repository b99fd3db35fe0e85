"""
Progress Reporting
tqdm progress bar fed by the dispatcher's running total
"""
import logging
import sys
from typing import Optional

import psutil
from tqdm import tqdm

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Async progress callback for BatchDispatcher

    Called with the cumulative number of dispatched documents after each
    batch; advances the bar by the difference since the last call.
    """

    def __init__(self, total: Optional[int] = None, enabled: bool = True,
                 description: str = "🚀 Migrating data"):
        self.enabled = enabled
        self.last_count = 0
        self.progress_bar: Optional[tqdm] = None
        self._process = psutil.Process()

        if enabled:
            self.progress_bar = tqdm(
                total=total or None,
                desc=description,
                unit="docs",
                unit_scale=True,
                dynamic_ncols=True,
                leave=True,
                file=sys.stdout
            )

    async def __call__(self, documents_dispatched: int):
        delta = documents_dispatched - self.last_count
        self.last_count = documents_dispatched

        if self.progress_bar is None:
            logger.info(f"Total documents copied so far: {documents_dispatched:,}")
            return

        if delta > 0:
            self.progress_bar.update(delta)
        memory_mb = self._process.memory_info().rss / 1024 / 1024
        self.progress_bar.set_postfix_str(f"Mem: {memory_mb:.0f}MB")

    def close(self):
        if self.progress_bar is not None:
            self.progress_bar.close()
            self.progress_bar = None
