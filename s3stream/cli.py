"""Command line entry point: stream a file or stdin into an object store."""

import argparse
import sys
from pathlib import Path
from typing import BinaryIO

from botocore.exceptions import BotoCoreError, ClientError

from s3stream._errors import S3StreamError
from s3stream.config import StreamConfig, load_config, parse_size
from s3stream.logging import get_logger
from s3stream.store import LocalObjectStore, S3ObjectStore
from s3stream.store.protocol import ObjectStoreClient
from s3stream.writer import S3OutputStream

READ_CHUNK_SIZE = 1024 * 1024


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3stream",
        description="Stream data of unknown size into S3 using multipart uploads",
    )
    parser.add_argument("source", help="File to upload, or '-' for stdin")
    parser.add_argument("dest", help="Target URL, e.g. s3://bucket/path/to/key")
    parser.add_argument(
        "--cache-size",
        default=None,
        help="Local memory budget, e.g. 64MiB (default: from config, 50MiB)",
    )
    parser.add_argument(
        "--no-checksums", action="store_true", help="Do not send Content-MD5"
    )
    parser.add_argument(
        "--no-overwrite",
        action="store_true",
        help="Fail if the target object already exists",
    )
    parser.add_argument("--endpoint", default=None, help="S3 endpoint URL")
    parser.add_argument("--region", default=None, help="AWS region")
    parser.add_argument(
        "--local-root",
        default=None,
        help="Write into a directory instead of S3 (bucket becomes a subdirectory)",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument(
        "--log-format", choices=["human", "json"], default=None, help="Log format"
    )
    return parser


def _apply_args(config: StreamConfig, args: argparse.Namespace) -> StreamConfig:
    """Apply command line overrides on top of the loaded configuration."""
    if args.cache_size is not None:
        config.max_local_cache = parse_size(args.cache_size)
    if args.no_checksums:
        config.use_checksums = False
    if args.no_overwrite:
        config.overwrite = False
    if args.endpoint:
        config.aws_endpoint = args.endpoint
    if args.region:
        config.aws_region = args.region
    if args.log_level:
        config.logging.level = args.log_level
    if args.log_format:
        config.logging.format = args.log_format
    return config


def _make_store(config: StreamConfig, local_root: str | None) -> ObjectStoreClient:
    if local_root:
        return LocalObjectStore(Path(local_root))
    return S3ObjectStore(endpoint=config.aws_endpoint, region=config.aws_region)


def _copy(source: BinaryIO, stream: S3OutputStream) -> int:
    """Copy ``source`` into ``stream`` chunk by chunk; return bytes copied."""
    total = 0
    while chunk := source.read(READ_CHUNK_SIZE):
        stream.write(chunk)
        total += len(chunk)
    return total


def upload(args: argparse.Namespace) -> str | None:
    """Run one upload described by parsed arguments; return the object location."""
    config = _apply_args(load_config(), args)
    logger = get_logger("s3stream", config.logging)

    bucket, key = S3ObjectStore._parse_url(args.dest)
    if not key:
        raise ValueError(f"Invalid S3 URL: {args.dest}. Missing key")

    store = _make_store(config, args.local_root)
    stream = S3OutputStream(
        store,
        bucket,
        key,
        max_local_cache=config.max_local_cache,
        use_checksums=config.use_checksums,
        overwrite=config.overwrite,
        queue_depth=config.queue_depth,
        logger=logger.getChild("upload"),
    )
    with stream:
        if args.source == "-":
            total = _copy(sys.stdin.buffer, stream)
        else:
            with open(args.source, "rb") as source:
                total = _copy(source, stream)

    logger.info(f"Streamed {total} bytes to s3://{bucket}/{key}")
    return stream.location


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for s3stream."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        location = upload(args)
    except (S3StreamError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ClientError, BotoCoreError) as e:
        print(f"Error: Upload failed: {e}", file=sys.stderr)
        sys.exit(1)

    if location:
        print(location)
