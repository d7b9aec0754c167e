"""Command-line entry point for attaching external images in HTML files."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .config import AttachConfig
from .downloader import UrlCache
from .models import SizePolicy
from .pipeline import AutoAttachPipeline, process_record
from .registry import LocalAttachmentRegistry
from .store import HtmlFileStore

logger = logging.getLogger("autoattach.cli")

MEGABYTE = 1024 * 1024


def _add_arguments(parser: argparse.ArgumentParser, defaults: AttachConfig) -> None:
    parser.add_argument("paths", nargs="+", type=Path, help="HTML files to rewrite in place")
    parser.add_argument(
        "--attachments-dir",
        default="attachments",
        type=Path,
        help="Directory where downloaded images are stored",
    )
    parser.add_argument(
        "--public-prefix",
        default="files/attach",
        help="Path prefix written into rewritten <img> tags",
    )
    parser.add_argument(
        "--module",
        default="files",
        help="Module identifier recorded for the attachments",
    )
    parser.add_argument(
        "--except-domains",
        default=defaults.except_domains,
        help="Comma-separated hosts to leave alone (supports *.example.com)",
    )
    parser.add_argument(
        "--site-url",
        default=defaults.site_url,
        help="Canonical site URL; its host is always treated as local",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host of the current request, also treated as local",
    )
    parser.add_argument(
        "--image-timeout",
        type=float,
        default=defaults.image_timeout,
        help="Seconds allowed for each image download",
    )
    parser.add_argument(
        "--total-timeout",
        type=float,
        default=defaults.total_timeout,
        help="Seconds allowed for all downloads of one file",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        default=defaults.retry_failed,
        help="Retry images previously marked download-failure or download-timeout",
    )
    parser.add_argument(
        "--reject-animated-gif",
        action="store_true",
        default=not defaults.allow_animated_gif,
        help="Refuse to attach animated GIFs",
    )
    parser.add_argument(
        "--max-file-size",
        type=float,
        default=0,
        help="Single attachment size limit in MB (0 = unlimited)",
    )
    parser.add_argument(
        "--max-total-size",
        type=float,
        default=0,
        help="Total attachment size limit per file in MB (0 = unlimited)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Download external images referenced by HTML files and point the tags at local copies.",
    )
    _add_arguments(parser, AttachConfig.from_env())
    return parser.parse_args(list(sys.argv[1:] if argv is None else argv))


def build_config(args: argparse.Namespace) -> AttachConfig:
    config = AttachConfig.from_env()
    config.except_domains = args.except_domains or ""
    config.site_url = args.site_url
    config.image_timeout = args.image_timeout
    config.total_timeout = args.total_timeout
    config.retry_failed = args.retry_failed
    config.allow_animated_gif = not args.reject_animated_gif
    config.apply_size_limits = config.apply_size_limits or bool(
        args.max_file_size or args.max_total_size
    )
    return config


def _size_policy(args: argparse.Namespace) -> SizePolicy:
    return SizePolicy(
        single_limit_bytes=int(args.max_file_size * MEGABYTE) or None,
        total_limit_bytes=int(args.max_total_size * MEGABYTE) or None,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )

    config = build_config(args)
    attachments_dir = Path(args.attachments_dir).resolve()
    registry = LocalAttachmentRegistry(
        attachments_dir,
        public_prefix=args.public_prefix,
        default_policy=_size_policy(args),
    )
    store = HtmlFileStore(attachments_dir / "uploaded_counts.json", module_id=args.module)
    pipeline = AutoAttachPipeline(config, registry)
    url_cache = UrlCache()

    overall_start = time.perf_counter()
    updated = 0
    for path in args.paths:
        if not path.is_file():
            logger.error("Not a file: %s", path)
            continue
        try:
            if process_record(pipeline, store, str(path), request_host=args.host, url_cache=url_cache):
                updated += 1
                logger.info("Updated %s", path)
            else:
                logger.debug("No changes for %s", path)
        except (OSError, UnicodeDecodeError):
            logger.exception("Unexpected error processing %s", path)
    total_elapsed = time.perf_counter() - overall_start

    logger.info(
        "Finished in %.2fs (%d/%d file(s) updated, %d distinct image(s) attached)",
        total_elapsed,
        updated,
        len(args.paths),
        len(url_cache),
    )


if __name__ == "__main__":
    main()
