"""
Document Ingestion Script for the Bidwinner ingestion service.

Runs the ingestion pipeline for documents already registered in Supabase,
or fails documents stuck in processing.

Usage:
    python ingest_documents.py DOCUMENT_ID [DOCUMENT_ID ...]
    python ingest_documents.py --sweep-stale 30
"""
import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from dependencies import build_services
from services.errors import IngestionError
from services.ingestion_job import IngestionJob

logger = logging.getLogger(__name__)


def ingest(job: IngestionJob, document_ids: List[str]) -> int:
    """
    Ingest each document in turn.

    Args:
        job: IngestionJob to run with
        document_ids: Documents to process

    Returns:
        Number of documents that failed
    """
    failures = 0
    for position, document_id in enumerate(document_ids, start=1):
        logger.info(f"[{position}/{len(document_ids)}] Processing {document_id}...")
        try:
            result = job.handle(document_id)
        except IngestionError as e:
            failures += 1
            logger.error(f"  ✗ {document_id}: {e.error.code} {e.error.message}")
            continue
        except Exception as e:
            failures += 1
            logger.exception(f"  ✗ {document_id}: unexpected error: {str(e)}")
            continue

        if result.skipped:
            logger.info(f"  ✓ Already completed ({result.chunk_count} chunks), skipped")
        else:
            suffix = " (truncated)" if result.truncated else ""
            logger.info(f"  ✓ Stored {result.chunk_count} chunks{suffix}")

    return failures


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ingest uploaded documents into the chunk store")
    parser.add_argument("document_ids", nargs="*", help="Ids of documents to process")
    parser.add_argument(
        "--sweep-stale",
        type=int,
        metavar="MINUTES",
        help="Mark documents processing for longer than MINUTES as failed"
    )
    return parser


def main(argv: Optional[List[str]] = None, job: Optional[IngestionJob] = None) -> int:
    """Main ingestion process. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.document_ids and args.sweep_stale is None:
        parser.error("provide document ids or --sweep-stale")

    services = None
    if job is None:
        services = build_services(delegate_to_worker=False)
        job = services.job

    try:
        if args.sweep_stale is not None:
            failed = job.fail_stale_documents(args.sweep_stale)
            logger.info(f"Marked {len(failed)} stale documents as failed")
            for document_id in failed:
                logger.info(f"  - {document_id}")

        failures = ingest(job, args.document_ids) if args.document_ids else 0
    except KeyboardInterrupt:
        logger.warning("Ingestion interrupted by user")
        return 1
    finally:
        if services is not None:
            services.close()

    if failures:
        logger.error(f"{failures} of {len(args.document_ids)} documents failed")
        return 1

    logger.info("Ingestion complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
