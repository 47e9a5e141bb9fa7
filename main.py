import csv
import logging
import sys
from decimal import Decimal
from typing import List, Optional, TextIO

import structlog

from config import Settings, get_settings
from errors import InputAccessError, InvariantViolation, LedgerError, StorageError
from ingest import TransactionReader, open_input
from models import RunSummary
from repositories import LedgerRepository
from services import get_transaction_processor
from storage import open_ledger_store

EXIT_OK = 0
EXIT_INPUT_ERROR = 1
EXIT_PROCESSING_ERROR = 2

REPORT_HEADER = ["client", "available", "held", "total", "locked"]

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    """Configure structured logging to stderr; stdout carries only the report."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=settings.log_level.upper(),
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ]
    else:
        # ConsoleRenderer formats exc_info itself
        processors += [
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False)
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def format_amount(value: float) -> str:
    """Render an amount in plain decimal notation, without a trailing '.0' for whole numbers."""
    if value.is_integer():
        return str(int(value))
    # shortest round-trip digits, never in exponent notation
    return format(Decimal(repr(value)), "f").rstrip("0").rstrip(".")


def write_report(repository: LedgerRepository, out: TextIO) -> None:
    csvwriter = csv.writer(out, lineterminator="\n")
    csvwriter.writerow(REPORT_HEADER)
    for account in repository.iter_accounts():
        csvwriter.writerow([
            account.client_id,
            format_amount(account.available),
            format_amount(account.held),
            format_amount(account.total),
            str(account.locked).lower(),
        ])


def process_file(path: str, out: TextIO, settings: Optional[Settings] = None) -> RunSummary:
    """Apply every record in the file at path and write the account report to out."""
    settings = settings or get_settings()
    stream = open_input(path)
    with stream, open_ledger_store(settings) as repository:
        logger.info("Processing transactions", path=path, store_backend=settings.store_backend)

        processor = get_transaction_processor(repository)
        reader = TransactionReader(stream)
        for record in reader:
            processor.process(record)

        summary = RunSummary(
            records_read=reader.records_read,
            records_skipped=reader.records_skipped,
            commands_applied=processor.applied_count,
            accounts_count=repository.get_accounts_count(),
            transfers_count=repository.get_transfers_count()
        )
        write_report(repository, out)

    logger.info("Processing completed", **summary.model_dump())
    return summary


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    settings = settings or get_settings()
    configure_logging(settings)

    if len(args) != 1:
        print("error: no input file specified", file=sys.stderr)
        print("usage: payments-ledger <transactions.csv>", file=sys.stderr)
        return EXIT_INPUT_ERROR

    try:
        process_file(args[0], sys.stdout, settings)
    except InputAccessError as e:
        logger.error("Cannot read input", path=args[0], error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except (StorageError, InvariantViolation) as e:
        logger.error("Processing aborted", path=args[0], error=str(e), exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_PROCESSING_ERROR
    except LedgerError as e:
        logger.error("Unexpected ledger error", path=args[0], error=str(e), exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return EXIT_PROCESSING_ERROR

    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
