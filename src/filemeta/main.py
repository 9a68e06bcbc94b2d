#!/usr/bin/env python
"""Command line entry point for filemeta."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from filemeta import __version__
from filemeta.config import config
from filemeta.exceptions import FileMetaError
from filemeta.models.db_models import get_session_factory, init_db
from filemeta.models.schema import UNSET
from filemeta.observability import configure_logging, metrics
from filemeta.services.metadata_service import MetadataService
from filemeta.storage.backup_store import BackupStore
from filemeta.storage.recent_tags import RecentTagsStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one sub-command per operation."""
    parser = argparse.ArgumentParser(
        prog="filemeta", description="Tags and ratings stored on the files themselves"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite backup database file path",
        type=str,
        default=os.environ.get("FILEMETA_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("FILEMETA_LOG_LEVEL", "WARNING"),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    tags = commands.add_parser("tags", help="Read or edit the tags of one file")
    tags_actions = tags.add_subparsers(dest="action", required=True)
    tags_get = tags_actions.add_parser("get")
    tags_get.add_argument("path")
    for action in ("set", "add", "clear"):
        sub = tags_actions.add_parser(action)
        sub.add_argument("path")
        sub.add_argument("tags", nargs="*")

    common = commands.add_parser("common", help="Tags shared by several files")
    common_actions = common.add_subparsers(dest="action", required=True)
    common_get = common_actions.add_parser("get")
    common_get.add_argument("paths", nargs="+")
    common_set = common_actions.add_parser("set")
    common_set.add_argument("paths", nargs="+")
    common_set.add_argument("--tags", nargs="*", default=[], help="New common tags")

    rating = commands.add_parser("rating", help="Read or edit the star rating")
    rating_actions = rating.add_subparsers(dest="action", required=True)
    rating_get = rating_actions.add_parser("get")
    rating_get.add_argument("path")
    rating_set = rating_actions.add_parser("set")
    rating_set.add_argument("path")
    rating_set.add_argument("value", type=float)
    rating_unset = rating_actions.add_parser("unset")
    rating_unset.add_argument("path")

    backup = commands.add_parser("backup", help="Mirror a file's metadata now")
    backup.add_argument("path")
    restore = commands.add_parser("restore", help="Write missing metadata back")
    restore.add_argument("path")
    commands.add_parser("restore-all", help="Restore every backed-up file")

    sync = commands.add_parser("sync", help="Copy tags and rating from the first file")
    sync.add_argument("paths", nargs="+")
    sync.add_argument(
        "--aggressive",
        action="store_true",
        help="Restore the source from backup first if its metadata is missing",
    )
    return parser


def parse_args(argv=None):
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)


def create_service() -> MetadataService:
    """Create the service on the configured backup database."""
    session_factory = get_session_factory(init_db())
    return MetadataService(
        backup_store=BackupStore(session_factory),
        recent_tags=RecentTagsStore(session_factory),
    )


def _emit(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def run_command(service: MetadataService, args) -> int:
    """Dispatch one parsed command. Returns the process exit code."""
    if args.command == "tags":
        if args.action == "get":
            _emit(service.get_user_tags(args.path))
        else:
            edit = {
                "set": service.set_user_tags,
                "add": service.add_user_tags,
                "clear": service.clear_user_tags,
            }[args.action]
            _emit(edit(args.path, args.tags).to_dict())
    elif args.command == "common":
        snapshot = service.get_common_user_tags(args.paths)
        if args.action == "get":
            _emit(list(snapshot.tags))
        else:
            _emit(service.set_common_user_tags(args.paths, snapshot, args.tags))
    elif args.command == "rating":
        if args.action == "get":
            rating = service.get_rating(args.path)
        elif args.action == "set":
            rating = service.set_rating(args.path, args.value)
        else:
            rating = service.set_rating(args.path, UNSET)
        _emit(None if rating is UNSET else rating)
    elif args.command == "backup":
        record = service.backup_metadata(args.path)
        _emit({"identity": record.identity.token, "path": record.path})
    elif args.command == "restore":
        _emit(service.restore_metadata(args.path))
    elif args.command == "restore-all":
        report = service.restore_all_on_background_thread().result()
        _emit(report.to_dict())
        return 1 if report.failed else 0
    elif args.command == "sync":
        report = service.sync(args.paths, aggressive_restore=args.aggressive)
        _emit(report.to_dict())
        return 1 if report.failed else 0
    return 0


def main(argv=None) -> int:
    """Run one filemeta command."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        configure_logging(config.get_log_dir(), level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    try:
        service = create_service()
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Failed to open backup database: {e}")
        print(str(e), file=sys.stderr)
        return 1

    try:
        return run_command(service, args)
    except FileMetaError as e:
        logger.debug(f"{args.command} failed: {e}")
        print(str(e), file=sys.stderr)
        return 1
    finally:
        service.app_is_terminating()
        logger.debug(f"Operation summary: {metrics.get_summary()}")


if __name__ == "__main__":
    sys.exit(main())
