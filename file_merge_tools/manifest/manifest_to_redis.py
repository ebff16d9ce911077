#!/usr/bin/env python3
"""
manifest_to_redis.py - Publish merge manifests to a Redis hash
==============================================================

Reads one or more manifest files written by ``file-merge --glob ... --manifest``
and stores every entry in a Redis hash so other hosts can see which files
hold which key ranges without scanning them.

REDIS DATA STRUCTURE
====================

    Key:   <redis_key> (specified by user)
    Field: <filename>
    Value: {"beginning_key": "12345", "ending_key": "12399",
            "delimiter": "tsv", "key_index": 0, "filesize": 48213}

COMMAND-LINE USAGE
==================

    # Publish a manifest to local Redis
    manifest-to-redis -i data.manifest -k manifest:data

    # Several manifests, remote server, replace what is there
    manifest-to-redis -i a.manifest -i b.manifest -k manifest:data \\
        --host redis.example.com --clear

    # Validate only
    manifest-to-redis -i data.manifest -k manifest:data --dry-run -v

NOTES
=====

- Invalid manifest lines are logged and skipped
- Entries are written in pipelined batches (--batch-size)
- The redis package (extra: file-merge-tools[redis]) is only needed when
  not in --dry-run mode
"""

import argparse
import json
import logging
import sys
from typing import List, Optional, Tuple

from ..settings import configure_logging
from .manifest_store import ManifestEntry, read_manifest_entries

logger = logging.getLogger(__name__)


def entry_to_redis_value(entry: ManifestEntry) -> str:
    """Serialize the per-file part of a manifest entry as the hash value."""
    return json.dumps(
        {
            "beginning_key": entry.beginning_key,
            "ending_key": entry.ending_key,
            "delimiter": entry.delimiter_label,
            "key_index": entry.key_index,
            "filesize": entry.filesize,
        },
        sort_keys=True,
    )


def connect_redis(
    redis_host: str = "localhost",
    redis_port: int = 6379,
    redis_db: int = 0,
    redis_password: Optional[str] = None,
    redis_username: Optional[str] = None,
    redis_socket: Optional[str] = None,
    use_ssl: bool = False,
    use_cluster: bool = False,
    timeout: int = 10,
):
    """
    Open and ping a Redis connection.

    Raises:
        ImportError: If the redis package is not installed
        redis.exceptions.ConnectionError: If the server cannot be reached
    """
    import redis  # pylint: disable=import-outside-toplevel

    if use_cluster:
        logger.info("Connecting to Redis Cluster: %s:%d", redis_host, redis_port)
        client = redis.RedisCluster(
            host=redis_host,
            port=redis_port,
            password=redis_password,
            username=redis_username,
            ssl=use_ssl,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
    elif redis_socket:
        logger.info("Connecting to Redis via socket: %s", redis_socket)
        client = redis.Redis(
            unix_socket_path=redis_socket,
            db=redis_db,
            password=redis_password,
            username=redis_username,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
    else:
        logger.info("Connecting to Redis: %s:%d/%d", redis_host, redis_port, redis_db)
        client = redis.Redis(
            host=redis_host,
            port=redis_port,
            db=redis_db,
            password=redis_password,
            username=redis_username,
            ssl=use_ssl,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    client.ping()
    return client


def _flush_batch(client, redis_key: str, batch: List[Tuple[str, str]]) -> None:
    pipe = client.pipeline()
    for filename, value in batch:
        pipe.hset(redis_key, filename, value)
    pipe.execute()


def submit_manifest_to_redis(
    manifest_paths: List[str],
    redis_key: str,
    batch_size: int = 500,
    clear_existing: bool = False,
    dry_run: bool = False,
    client=None,
    **connection,
) -> Tuple[int, int]:
    """
    Store manifest entries in a Redis hash.

    Args:
        manifest_paths: Manifest files to publish
        redis_key: Hash key receiving one field per file
        batch_size: Entries per pipeline
        clear_existing: Delete the hash before writing
        dry_run: Parse and count only, never touch Redis
        client: Existing Redis client (a new one is opened from
            ``connection`` keyword arguments otherwise)
        **connection: Keyword arguments for connect_redis()

    Returns:
        Tuple of (entries_submitted, errors_encountered)
    """
    submitted = 0
    errors = 0

    if dry_run:
        logger.info("DRY RUN MODE - No data will be written to Redis")
    elif client is None:
        try:
            client = connect_redis(**connection)
        except ImportError:
            logger.error(
                "redis package not installed. Install with: pip install 'file-merge-tools[redis]'"
            )
            return 0, 1
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Failed to connect to Redis: %s", e)
            return 0, 1

    if clear_existing and not dry_run:
        logger.info("Clearing existing hash key: %s", redis_key)
        client.delete(redis_key)

    for manifest_path in manifest_paths:
        batch: List[Tuple[str, str]] = []
        file_submitted = 0
        file_errors = 0
        try:
            for entry in read_manifest_entries(manifest_path):
                batch.append((entry.filename, entry_to_redis_value(entry)))
                if len(batch) >= batch_size:
                    if not dry_run:
                        try:
                            _flush_batch(client, redis_key, batch)
                        except Exception as e:  # pylint: disable=broad-except
                            logger.error("Error submitting batch: %s", e)
                            file_errors += len(batch)
                            batch.clear()
                            continue
                    file_submitted += len(batch)
                    batch.clear()

            if batch:
                if dry_run:
                    file_submitted += len(batch)
                else:
                    try:
                        _flush_batch(client, redis_key, batch)
                        file_submitted += len(batch)
                    except Exception as e:  # pylint: disable=broad-except
                        logger.error("Error submitting final batch: %s", e)
                        file_errors += len(batch)
        except OSError as e:
            logger.error("Error reading %s: %s", manifest_path, e)
            file_errors += 1

        logger.info(
            "Completed %s: %d entries, %d errors", manifest_path, file_submitted, file_errors
        )
        submitted += file_submitted
        errors += file_errors

    return submitted, errors


def main(argv=None):
    """Command-line interface."""
    parser = argparse.ArgumentParser(
        prog="manifest-to-redis",
        description="Publish file-merge manifests to a Redis hash",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
        "  %(prog)s -i data.manifest -k manifest:data\n"
        "  %(prog)s -i a.manifest -i b.manifest -k manifest:data --clear\n"
        "  %(prog)s -i data.manifest -k manifest:data --dry-run -v",
    )
    parser.add_argument(
        "-i",
        "--input",
        action="append",
        dest="inputs",
        required=True,
        help="Manifest file (can specify multiple times)",
    )
    parser.add_argument("-k", "--redis-key", required=True, help="Redis hash key")

    redis_conn = parser.add_argument_group("Redis connection")
    redis_conn.add_argument("--host", default="localhost", help="Redis host (default: localhost)")
    redis_conn.add_argument("--port", type=int, default=6379, help="Redis port (default: 6379)")
    redis_conn.add_argument("--db", type=int, default=0, help="Redis database number (default: 0)")
    redis_conn.add_argument("--password", help="Redis password (optional)")
    redis_conn.add_argument("--username", help="Redis username for ACL (optional)")
    redis_conn.add_argument("--socket", help="Unix socket path (alternative to host:port)")
    redis_conn.add_argument("--ssl", action="store_true", help="Use SSL/TLS connection")
    redis_conn.add_argument("--cluster", action="store_true", help="Connect to Redis Cluster")
    redis_conn.add_argument(
        "--timeout", type=int, default=10, help="Connection timeout in seconds (default: 10)"
    )

    parser.add_argument(
        "--batch-size", type=int, default=500, help="Entries per batch (default: 500)"
    )
    parser.add_argument("--clear", action="store_true", help="Clear the hash key first")
    parser.add_argument(
        "--dry-run", action="store_true", help="Parse and validate only, don't write to Redis"
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More output")

    args = parser.parse_args(argv)
    if args.batch_size < 1:
        parser.error("Batch size must be at least 1")

    configure_logging(args.verbose)

    try:
        _submitted, errors = submit_manifest_to_redis(
            manifest_paths=args.inputs,
            redis_key=args.redis_key,
            batch_size=args.batch_size,
            clear_existing=args.clear,
            dry_run=args.dry_run,
            redis_host=args.host,
            redis_port=args.port,
            redis_db=args.db,
            redis_password=args.password,
            redis_username=args.username,
            redis_socket=args.socket,
            use_ssl=args.ssl,
            use_cluster=args.cluster,
            timeout=args.timeout,
        )
    except KeyboardInterrupt:
        print("\n# Interrupted by user", file=sys.stderr)
        sys.exit(130)

    if errors > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
