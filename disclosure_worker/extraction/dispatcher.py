from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from disclosure_worker.extraction.base import BaseExtractionClient
from disclosure_worker.extraction.models import PageUnit, UnitResult
from disclosure_worker.logging.logger import Log

PAGE_CONCURRENCY = 50


class ExtractionDispatcher:
    """Runs one extraction call per unit under a bounded concurrency limit.

    Every unit gets a result: a unit whose call raises contributes empty rows
    and its error is logged, so one bad page never sinks its siblings.
    Results come back ordered by ordinal, never by completion order.
    """

    def __init__(
        self,
        client: BaseExtractionClient,
        max_concurrency: int = PAGE_CONCURRENCY,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._client = client
        self._max_concurrency = max_concurrency

    def dispatch(self, units: list[PageUnit]) -> list[UnitResult]:
        """Extract all units concurrently.

        Raises:
            ExtractionClientUnavailableError: if the client is unusable; raised
                before any call is attempted.
        """
        self._client.ensure_ready()
        if not units:
            return []

        model = self._client.model_identity
        results: dict[int, UnitResult] = {}
        workers = min(self._max_concurrency, len(units))
        Log.info(f"[{model}] Dispatching {len(units)} units with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="extract") as executor:
            future_to_unit: dict[Future[UnitResult], PageUnit] = {
                executor.submit(self._extract_unit, unit): unit for unit in units
            }
            for future in as_completed(future_to_unit):
                unit = future_to_unit[future]
                results[unit.ordinal] = future.result()

        failed = sum(1 for r in results.values() if r.failed)
        if failed:
            Log.warning(f"[{model}] {failed} of {len(units)} units failed and were left empty")
        return [results[ordinal] for ordinal in sorted(results)]

    def _extract_unit(self, unit: PageUnit) -> UnitResult:
        model = self._client.model_identity
        try:
            row_set = self._client.extract(unit.data)
        except Exception as exc:
            Log.error(
                f"[{model}] Error processing page {unit.first_page}: {exc}",
                ordinal=unit.ordinal,
            )
            return UnitResult(
                ordinal=unit.ordinal,
                page_number=unit.first_page,
                page_count=unit.page_count,
                error=str(exc) or type(exc).__name__,
            )
        Log.info(
            f"[{model}] Page {unit.first_page}: "
            f"{len(row_set.ingress)} ingress, {len(row_set.egress)} egress"
        )
        return UnitResult(
            ordinal=unit.ordinal,
            page_number=unit.first_page,
            page_count=unit.page_count,
            ingress=list(row_set.ingress),
            egress=list(row_set.egress),
        )
