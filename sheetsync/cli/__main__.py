from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from sheetsync.api.errors import RequestError
from sheetsync.api.records import EmptyChangesetError, StreamParseError, simple_stream_records, stream_records, write_records
from sheetsync.api.sheets import get_sheet
from sheetsync.api.transport import PlatformClient
from sheetsync.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from sheetsync.logging.error_log import ErrorLogBuffer
from sheetsync.logging.init import log_summary, setup_logging
from sheetsync.models.config_models import AppConfig
from sheetsync.models.job_run import JobContext, JobStatus
from sheetsync.services.autofix import AutofixWorker, autofix, fix_date_format
from sheetsync.services.dedupe import DedupeWorker, prepare_merge
from sheetsync.services.hooks import ComputeWorker, build_hooks
from sheetsync.services.job_worker import WorkerRegistry, run_job
from sheetsync.services.summary import render_summary_line

"""CLI entrypoint.

    python -m sheetsync.cli [--config PATH] [--debug] <command> ...

Commands:
- dedupe   merge duplicate rows of a sheet (``--dry-run`` reports only)
- autofix  reformat the configured date fields of a sheet
- compute  apply the computed-field hooks registered for the sheet's slug
- run-job  drive a platform job through ack -> execute -> complete | fail
- inspect  print the first rows of a sheet as JSON lines

Exit codes: 0 success, 1 fatal (config / transport / stream), 2 job failed.
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_JOB_FAILED = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True: .env の値で既存環境変数を上書き (API トークン / URL を最優先)
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def build_registry() -> WorkerRegistry:
    registry = WorkerRegistry()
    registry.register("dedupe", DedupeWorker)
    registry.register("auto-fix", AutofixWorker, scope="sheet")
    registry.register("compute", ComputeWorker, scope="sheet")
    return registry


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sheetsync", description="Sheet record dedupe and job runner")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    dedupe = sub.add_parser("dedupe", help="Merge duplicate records of a sheet")
    dedupe.add_argument("--sheet-id", required=True)
    dedupe.add_argument("--key", action="append", dest="keys", help="Dedupe key (repeatable)")
    dedupe.add_argument("--dry-run", action="store_true", help="Report without writing")

    fix = sub.add_parser("autofix", help="Normalize configured date fields")
    fix.add_argument("--sheet-id", required=True)

    compute = sub.add_parser("compute", help="Apply computed-field hooks to a sheet")
    compute.add_argument("--sheet-id", required=True)
    compute.add_argument("--dry-run", action="store_true", help="Report without writing")

    job = sub.add_parser("run-job", help="Run a registered job worker")
    job.add_argument("--job-id", required=True)
    job.add_argument("--action", required=True, help="e.g. dedupe or sheet:auto-fix")
    job.add_argument("--sheet-id")
    job.add_argument("--workbook-id")

    inspect = sub.add_parser("inspect", help="Print the first rows of a sheet")
    inspect.add_argument("--sheet-id", required=True)
    inspect.add_argument("--limit", type=int, default=5)
    return p.parse_args(argv)


def _cmd_dedupe(client: PlatformClient, cfg: AppConfig, args: argparse.Namespace) -> int:
    records = stream_records(client, sheet_id=args.sheet_id)
    sheet = get_sheet(client, args.sheet_id, page_size=cfg.records.sheet_page_size)
    keys = args.keys or list(cfg.dedupe.override_keys) or None
    result = prepare_merge(sheet.config, records, keys)

    if args.dry_run:
        setup_logging().info("dry-run: nothing written")
    elif records.changes():
        write_records(
            client, records, sheet_id=args.sheet_id, snapshot=True, batch_size=cfg.records.write_batch_size
        )

    # log_summary が "SUMMARY " を付けるため除去
    log_summary(render_summary_line("dedupe", result, total_records=len(records))[8:])
    return EXIT_SUCCESS


def _cmd_autofix(client: PlatformClient, cfg: AppConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    fixups = {key: fix_date_format for key in cfg.autofix.date_fields}
    if not fixups:
        logger.warning("autofix: no date_fields configured")
        return EXIT_SUCCESS
    result = autofix(client, args.sheet_id, fixups, page_size=cfg.records.sheet_page_size)
    logger.info(f"autofix: {result.lines} records updated")
    return EXIT_SUCCESS


def _cmd_compute(client: PlatformClient, cfg: AppConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    sheet = get_sheet(client, args.sheet_id, page_size=cfg.records.sheet_page_size)
    records = stream_records(client, sheet_id=args.sheet_id)
    changed = build_hooks().apply(sheet.slug, records)

    if args.dry_run:
        logger.info("dry-run: nothing written")
    elif changed:
        write_records(client, records, sheet_id=args.sheet_id, batch_size=cfg.records.write_batch_size)

    log_summary(f"action=compute sheet={args.sheet_id} slug={sheet.slug} total={len(records)} computed={changed}")
    return EXIT_SUCCESS


def _cmd_run_job(client: PlatformClient, cfg: AppConfig, args: argparse.Namespace) -> int:
    logger = setup_logging()
    context = JobContext(
        job_id=args.job_id,
        action=args.action,
        sheet_id=args.sheet_id,
        workbook_id=args.workbook_id,
    )
    error_log = ErrorLogBuffer(cfg.error_log_dir)
    run = run_job(client, build_registry(), context, error_log=error_log, config=cfg)
    log_path = error_log.flush()
    if log_path is not None:
        logger.info(f"error log: {log_path}")
    message = run.outcome.message if run.outcome else ""
    log_summary(f"action={args.action} job={args.job_id} status={run.status.value} message={message!r}")
    return EXIT_SUCCESS if run.status is JobStatus.COMPLETED else EXIT_JOB_FAILED


def _cmd_inspect(client: PlatformClient, cfg: AppConfig, args: argparse.Namespace) -> int:
    rows = simple_stream_records(client, sheet_id=args.sheet_id)
    print(f"SHEET: {args.sheet_id} rows={len(rows)}")
    for row in rows[: max(args.limit, 0)]:
        print(json.dumps(row, ensure_ascii=False, default=str))
    return EXIT_SUCCESS


COMMANDS = {
    "dedupe": _cmd_dedupe,
    "autofix": _cmd_autofix,
    "compute": _cmd_compute,
    "run-job": _cmd_run_job,
    "inspect": _cmd_inspect,
}


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む (空リストはそのまま)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel("DEBUG")
        logger.setLevel("DEBUG")
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    client = PlatformClient(cfg.api)
    try:
        return COMMANDS[args.command](client, cfg, args)
    except (RequestError, StreamParseError, EmptyChangesetError, LookupError) as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
