import argparse
import dataclasses
import json
from collections.abc import Callable

from disclosure_worker.batch.orchestrator import build_batch_orchestrator
from disclosure_worker.config.settings import Settings
from disclosure_worker.database.connection import apply_schema, close_pool, init_pool
from disclosure_worker.database.repositories.batch_jobs_repository import BatchJobsRepository
from disclosure_worker.database.repositories.documents_repository import DocumentsRepository
from disclosure_worker.database.repositories.extraction_runs_repository import (
    ExtractionRunsRepository,
)
from disclosure_worker.database.repositories.job_repository import JobRepository
from disclosure_worker.database.repositories.validated_data_repository import (
    ValidatedDataRepository,
)
from disclosure_worker.logging.logger import Log
from disclosure_worker.processor.processor import build_page_reextraction, build_processor
from disclosure_worker.processor.review import ReviewService
from disclosure_worker.processor.summary import build_summary_extraction
from disclosure_worker.worker.job_runner import JobRunner
from disclosure_worker.worker.worker import Worker

Handler = Callable[[argparse.Namespace, Settings], int]


def run_worker(args: argparse.Namespace, settings: Settings) -> int:
    job_repo = JobRepository(settings.max_job_attempts)
    job_runner = JobRunner(
        build_processor(settings),
        build_page_reextraction(settings),
        build_summary_extraction(settings),
        job_repo,
        settings,
    )
    worker = Worker(job_repo, job_runner, settings)
    worker.install_signal_handlers()
    worker.run(max_jobs=args.max_jobs)
    return 0


def run_init_db(args: argparse.Namespace, settings: Settings) -> int:
    apply_schema()
    Log.info("Database schema is up to date")
    return 0


def run_enqueue(args: argparse.Namespace, settings: Settings) -> int:
    job_repo = JobRepository(settings.max_job_attempts)
    for document_id in args.document_ids:
        job_id = job_repo.enqueue(document_id)
        Log.info(f"Queued document {document_id} as job {job_id}")
    return 0


def run_reextract(args: argparse.Namespace, settings: Settings) -> int:
    service = build_page_reextraction(settings)
    if args.inline:
        result = service.reextract(args.document_id, args.page)
        print(json.dumps(dataclasses.asdict(result)))
    else:
        service.request(args.document_id, args.page)
    return 0


def run_retry(args: argparse.Namespace, settings: Settings) -> int:
    processor = build_processor(settings)
    if args.all_failed:
        processor.retry_all_failed()
    for document_id in args.document_ids:
        processor.retry(document_id)
    return 0


def run_summarize(args: argparse.Namespace, settings: Settings) -> int:
    service = build_summary_extraction(settings)
    for document_id in args.document_ids:
        if args.queue:
            service.request(document_id)
            continue
        record = service.run(document_id)
        summary = dataclasses.asdict(record.summary) if record is not None else None
        print(json.dumps({"document_id": document_id, "summary": summary}))
    return 0


def run_batch_submit(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = build_batch_orchestrator(settings)
    if args.wait:
        run_ids = orchestrator.run(args.document_ids, args.model)
        print(json.dumps(run_ids))
        return 0
    record = orchestrator.submit(args.document_ids, args.model)
    print(record.job_name)
    return 0


def run_batch_resume(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = build_batch_orchestrator(settings)
    job_names = args.job_names or [r.job_name for r in BatchJobsRepository().list_active()]
    if not job_names:
        Log.info("No active batch jobs")
    exit_code = 0
    for job_name in job_names:
        try:
            run_ids = orchestrator.resume(job_name)
        except Exception as exc:
            Log.error(f"Batch job {job_name} could not be collected: {exc}")
            exit_code = 1
            continue
        print(json.dumps({"job": job_name, "runs": run_ids}))
    return exit_code


def run_review(args: argparse.Namespace, settings: Settings) -> int:
    service = ReviewService(
        DocumentsRepository(), ExtractionRunsRepository(), ValidatedDataRepository()
    )
    pair = tuple(args.diff_pair) if args.diff_pair else None
    view = service.review_view(args.document_id, pair)  # type: ignore[arg-type]
    summary = {
        "document_id": view.document_id,
        "source": view.source,
        "models": view.model_order,
        "diff_pair": view.diff_pair,
        "ingress_rows": len(view.ingress),
        "egress_rows": len(view.egress),
        "ingress_diffs": {k: sorted(v) for k, v in view.ingress_diffs.items()},
        "egress_diffs": {k: sorted(v) for k, v in view.egress_diffs.items()},
        "pages_with_diffs": view.pages_with_diffs,
        "pages_with_unreadables": view.pages_with_unreadables,
    }
    print(json.dumps(summary, indent=2))
    return 0


def run_rotate(args: argparse.Namespace, settings: Settings) -> int:
    service = ReviewService(
        DocumentsRepository(), ExtractionRunsRepository(), ValidatedDataRepository()
    )
    service.set_page_rotation(args.document_id, args.page, args.rotation)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="disclosure-worker",
        description="Extraction worker for campaign finance disclosure documents",
    )
    subparsers = parser.add_subparsers(dest="command")

    worker = subparsers.add_parser("worker", help="Poll and run extraction jobs (default)")
    worker.add_argument("--max-jobs", type=int, default=None)
    worker.set_defaults(handler=run_worker)

    init_db = subparsers.add_parser("init-db", help="Create missing tables")
    init_db.set_defaults(handler=run_init_db)

    enqueue = subparsers.add_parser("enqueue", help="Queue whole-document extraction")
    enqueue.add_argument("document_ids", type=int, nargs="+")
    enqueue.set_defaults(handler=run_enqueue)

    reextract = subparsers.add_parser("reextract", help="Re-extract a single page")
    reextract.add_argument("document_id", type=int)
    reextract.add_argument("page", type=int)
    reextract.add_argument(
        "--inline", action="store_true", help="Run now instead of queueing a job"
    )
    reextract.set_defaults(handler=run_reextract)

    retry = subparsers.add_parser("retry", help="Discard runs and re-queue documents")
    retry.add_argument("document_ids", type=int, nargs="*")
    retry.add_argument("--all-failed", action="store_true")
    retry.set_defaults(handler=run_retry)

    summarize = subparsers.add_parser(
        "summarize", help="Extract the income/expense summary form"
    )
    summarize.add_argument("document_ids", type=int, nargs="+")
    summarize.add_argument("--queue", action="store_true", help="Queue jobs instead of running now")
    summarize.set_defaults(handler=run_summarize)

    batch_submit = subparsers.add_parser("batch-submit", help="Submit documents as a batch job")
    batch_submit.add_argument("document_ids", type=int, nargs="+")
    batch_submit.add_argument("--model", default=None)
    batch_submit.add_argument("--wait", action="store_true", help="Poll and collect results")
    batch_submit.set_defaults(handler=run_batch_submit)

    batch_resume = subparsers.add_parser(
        "batch-resume", help="Poll and collect submitted batch jobs (all active by default)"
    )
    batch_resume.add_argument("job_names", nargs="*")
    batch_resume.set_defaults(handler=run_batch_resume)

    review = subparsers.add_parser("review", help="Print the reconciled review summary")
    review.add_argument("document_id", type=int)
    review.add_argument("--diff-pair", nargs=2, metavar=("MODEL_A", "MODEL_B"))
    review.set_defaults(handler=run_review)

    rotate = subparsers.add_parser("rotate", help="Set a page's display rotation")
    rotate.add_argument("document_id", type=int)
    rotate.add_argument("page", type=int)
    rotate.add_argument("rotation", type=int)
    rotate.set_defaults(handler=run_rotate)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point: initialize pool -> build dependencies -> run the command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    handler: Handler = getattr(args, "handler", run_worker)
    if args.command is None:
        args.max_jobs = None

    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)
    try:
        return handler(args, settings)
    finally:
        close_pool()


if __name__ == "__main__":
    raise SystemExit(main())
