import argparse
import logging
import sys

from tqdm import tqdm

from wdedit import config
from wdedit.gateway import RemoteEntityGateway
from wdedit.guard import EditGuardPolicy
from wdedit.notifier import EditLog, LoggingNotifier
from wdedit.orchestrator import EntityAnnotationOrchestrator
from wdedit.preferences import SQLitePreferenceStore
from wdedit.records import RecordValidationError, load_records, normalize_record
from wdedit.scheduling import Dispatcher

logger = logging.getLogger("annotate")


def parse_label(raw):
    """Parse a lang=text pair given on the command line."""
    language, sep, text = raw.partition("=")
    if not sep or not language.strip() or not text.strip():
        raise argparse.ArgumentTypeError(f"Expected LANG=TEXT, got {raw!r}")
    return {"language": language.strip(), "text": text.strip()}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Add image, depicts and caption edits for uploaded files.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--entity", help="Subject item id, e.g. Q42.")
    target.add_argument("--batch", help="Path to a .jsonl or .json file of annotation records.")
    parser.add_argument("--file", help="Uploaded file name, e.g. 'File:Cat.jpg' (with --entity).")
    parser.add_argument(
        "--label",
        action="append",
        type=parse_label,
        default=[],
        metavar="LANG=TEXT",
        help="Caption to set on the file entity; repeatable (with --entity).",
    )
    parser.add_argument("--title", default=None, help="Display title used in the success message (with --entity).")
    parser.add_argument("--locale", default=config.DEFAULT_LOCALE, help="Locale for user messages.")
    parser.add_argument("--preferences", default=str(config.PREFERENCES_DB), help="Preference store path.")
    parser.add_argument("--edit-log", default=str(config.EDIT_LOG_FILE), help="JSONL edit log path.")
    parser.add_argument("--token", default=None, help="Edit token passed to label edits.")
    parser.add_argument("--workers", type=int, default=config.BACKGROUND_MAX_WORKERS, help="Background workers.")
    parser.add_argument("--dry-run", action="store_true", help="Validate records and exit without editing.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)
    if args.entity and not args.file:
        parser.error("--file is required with --entity")
    return args


def collect_records(args):
    if args.batch:
        return list(load_records(args.batch))
    raw = {"entity_id": args.entity, "file": args.file, "labels": args.label}
    if args.title is not None:
        raw["title"] = args.title
    return [normalize_record(raw)]


def run(records, orchestrator, preferences):
    """Apply upload-flow preferences per record and start its edits."""
    for record in tqdm(records, desc="Annotating", unit="file", disable=len(records) < 2):
        preferences.put_many(record.preferences())
        orchestrator.annotate(record.entity_id, record.file, record.labels)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        records = collect_records(args)
    except RecordValidationError as exc:
        logger.error("[!] Invalid annotation input: %s %s", exc, exc.details)
        return 2
    logger.info("[*] Loaded %s annotation record(s).", len(records))
    if args.dry_run:
        return 0

    preferences = SQLitePreferenceStore(args.preferences)
    notifier = LoggingNotifier(locale=args.locale, edit_log=EditLog(args.edit_log))
    dispatcher = Dispatcher(max_workers=args.workers)
    orchestrator = EntityAnnotationOrchestrator(
        gateway=RemoteEntityGateway(),
        notifier=notifier,
        guard=EditGuardPolicy(preferences),
        preferences=preferences,
        dispatcher=dispatcher,
        auth_token=args.token,
    )
    try:
        run(records, orchestrator, preferences)
        if not dispatcher.wait_idle(timeout=config.WAIT_IDLE_TIMEOUT):
            logger.warning("[!] Timed out with %s edit step(s) still pending.", dispatcher.pending())
    finally:
        dispatcher.shutdown(wait=False)
        notifier.close()
        preferences.close()
    logger.info(
        "[+] Done. %s claim(s) succeeded, %s failed. Edit log: %s",
        notifier.success_count,
        notifier.failure_count,
        args.edit_log,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
