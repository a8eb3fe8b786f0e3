"""Deadline Detection Service for turning page text into stored tasks."""

import asyncio
import logging
import time

from .config import DEFAULT_RESCAN_QUIET_INTERVAL
from .exceptions import ReconciliationError, StoreUnavailableError
from .interfaces import TextSource
from .models import DetectionResult, PageMetadata, RawMatch, Task
from .patterns import DeadlineMatcher
from .reconciler import TaskReconciler
from .synthesizer import TaskSynthesizer

logger = logging.getLogger(__name__)


class DeadlineDetectionService:
    """
    Service for detecting deadline tasks in page text.

    Runs segmentation, matching, date normalization and task synthesis
    for a text source, then reconciles the candidates into the store.
    A scan overtaken by a newer one is discarded instead of reconciled.
    """

    def __init__(
        self,
        reconciler: TaskReconciler | None = None,
        matcher: DeadlineMatcher | None = None,
        synthesizer: TaskSynthesizer | None = None,
        quiet_interval: float = DEFAULT_RESCAN_QUIET_INTERVAL,
    ) -> None:
        """
        Initialize Deadline Detection Service.

        Args:
            reconciler: Reconciler for storing candidates; None to only detect
            matcher: Deadline phrase matcher
            synthesizer: Task synthesizer
            quiet_interval: Seconds without new triggers before a re-scan runs
        """
        self._reconciler = reconciler
        self._matcher = matcher or DeadlineMatcher()
        self._synthesizer = synthesizer or TaskSynthesizer()
        self._quiet_interval = quiet_interval
        self._latest_scan_id = 0
        self._last_result: DetectionResult | None = None
        self._pending_rescan: asyncio.Task[DetectionResult] | None = None

        logger.info(
            f"Deadline Detection Service initialized "
            f"(persistence={'on' if reconciler else 'off'}, quiet_interval={quiet_interval}s)"
        )

    def extract_candidates(self, source: TextSource) -> list[Task]:
        """
        Run the detection pipeline without touching the store.

        Chunks that fail to process are skipped; the rest of the batch
        still runs.

        Args:
            source: Page to scan

        Returns:
            Candidate tasks, with in-batch duplicates collapsed
        """
        now = source.now()
        page = PageMetadata(url=source.url, title=source.title)

        matches: list[RawMatch] = []
        for chunk in source.get_chunks():
            try:
                matches.extend(self._matcher.match(chunk))
            except (ValueError, UnicodeError) as e:
                logger.warning(f"Skipping unprocessable chunk from {chunk.source_ref}: {e}")

        candidates = self._synthesizer.synthesize_batch(matches, page, now)
        logger.debug(
            f"Found {len(matches)} deadline phrases, {len(candidates)} candidates on {page.url}"
        )
        return candidates

    async def detect(self, source: TextSource) -> DetectionResult:
        """
        Detect deadline tasks in a source and store the new ones.

        Persistence failures are reported in the result; the detected
        candidates are returned either way.

        Args:
            source: Page to scan

        Returns:
            DetectionResult for this scan
        """
        self._latest_scan_id += 1
        scan_id = self._latest_scan_id
        start_time = time.time()

        candidates = await asyncio.to_thread(self.extract_candidates, source)

        if scan_id != self._latest_scan_id:
            logger.info(f"Scan {scan_id} superseded by scan {self._latest_scan_id}, discarding")
            return DetectionResult(
                scan_id=scan_id,
                tasks=candidates,
                processing_time=time.time() - start_time,
                superseded=True,
            )

        result = DetectionResult(scan_id=scan_id, tasks=candidates)
        if self._reconciler is not None:
            await self._store_candidates(self._reconciler, candidates, result)

        result.processing_time = time.time() - start_time
        if self._last_result is None or scan_id > self._last_result.scan_id:
            self._last_result = result

        logger.info(
            f"Scan {scan_id} detected {len(candidates)} tasks "
            f"({len(result.inserted)} new, {len(result.duplicates)} duplicates) "
            f"in {result.processing_time:.3f}s"
        )
        return result

    async def _store_candidates(
        self, reconciler: TaskReconciler, candidates: list[Task], result: DetectionResult
    ) -> None:
        errors = []

        for candidate in candidates:
            try:
                outcome = await reconciler.reconcile(candidate)
            except ReconciliationError as e:
                logger.error(f"Dropping candidate {candidate.id}: {e}")
                errors.append(str(e))
                continue
            except StoreUnavailableError as e:
                logger.error(f"Task store unavailable, detection results not saved: {e}")
                errors.append(f"Task store unavailable: {e}")
                break

            if outcome.inserted:
                result.inserted.append(outcome.task)
            else:
                result.duplicates.append(outcome.task)

        if errors:
            result.error = "; ".join(errors)

    def get_last_detected(self) -> DetectionResult | None:
        """Get the most recent completed scan without re-running it."""
        return self._last_result

    def schedule_rescan(self, source: TextSource) -> "asyncio.Task[DetectionResult]":
        """
        Schedule a debounced re-scan after content changes.

        Each call restarts the quiet-interval timer, so a burst of
        changes produces a single scan.

        Args:
            source: Page to re-scan

        Returns:
            The asyncio task that will run the scan
        """
        if self._pending_rescan is not None and not self._pending_rescan.done():
            self._pending_rescan.cancel()

        self._pending_rescan = asyncio.create_task(self._delayed_detect(source))
        return self._pending_rescan

    async def _delayed_detect(self, source: TextSource) -> DetectionResult:
        await asyncio.sleep(self._quiet_interval)
        return await self.detect(source)

    async def shutdown(self) -> None:
        """Cancel any pending re-scan."""
        if self._pending_rescan is not None and not self._pending_rescan.done():
            self._pending_rescan.cancel()
            try:
                await self._pending_rescan
            except asyncio.CancelledError:
                pass
        self._pending_rescan = None
