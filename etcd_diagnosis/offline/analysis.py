"""Per-key revision statistics from a member's backend file.

The `key` bucket is ordered by revision, not by logical key, so per-key history can only be
recovered by a full scan that regroups revisions by the key stored in each value.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, TextIO, Tuple

from etcd_diagnosis.offline.bolt import DEFAULT_LOCK_TIMEOUT, BoltFormatError, BoltReader, StoreOpenError
from etcd_diagnosis.offline.mvccpb import DecodeError, unmarshal_key_value
from etcd_diagnosis.offline.revision import BucketKey, BucketKeyError, bytes_to_bucket_key

logger = logging.getLogger(__name__)

KEY_BUCKET_NAME = b"key"


@dataclass(frozen=True)
class KeyItem:
    key: str
    rev_count: int


def to_backend_file_name(data_dir: str) -> str:
    """Backend path used by the server for a data dir: `<data-dir>/member/snap/db`."""
    return os.path.join(data_dir, "member", "snap", "db")


def _file_exists(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StoreOpenError(f"Error checking file existence of {path}: {e}") from e
    return True


def _decode_key(raw: bytes) -> str:
    return raw.decode("utf-8", errors="backslashreplace")


def build_key_index(entries: Iterable[Tuple[bytes, Optional[bytes]]]) -> Dict[bytes, List[BucketKey]]:
    """
    Group revisions by logical key (raw bytes; decoding happens only for display).

    Entries whose revision or value cannot be decoded are logged and skipped.
    """
    key_map: Dict[bytes, List[BucketKey]] = {}
    for k, v in entries:
        try:
            rev = bytes_to_bucket_key(k)
        except BucketKeyError as e:
            logger.warning("Failed to decode revision: %r, error: %s", k, e)
            continue

        if v is None:
            logger.warning("Unexpected nested bucket at revision %s, skipping", rev)
            continue
        try:
            kv = unmarshal_key_value(v)
        except DecodeError as e:
            logger.warning("Failed to unmarshal key: %s, error: %s", rev, e)
            continue

        key_map.setdefault(bytes(kv.key), []).append(rev)
    return key_map


def key_stats(key_map: Dict[bytes, List[BucketKey]]) -> List[KeyItem]:
    """Revision count descending; equal counts ordered by raw key bytes."""
    ordered = sorted(key_map.items(), key=lambda kv: (-len(kv[1]), kv[0]))
    return [KeyItem(key=_decode_key(k), rev_count=len(v)) for k, v in ordered]


def print_stats(stats: List[KeyItem], out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    print("All key stats:", file=out)
    for it in stats:
        print(f"{it.key}: {it.rev_count}", file=out)


def analyze_offline(
    data_dir: str,
    *,
    out: Optional[TextIO] = None,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> Optional[List[KeyItem]]:
    """
    Scan `<data-dir>/member/snap/db` and print per-key revision counts.

    Returns None (after logging) when the backend file does not exist. Raises StoreOpenError when
    the file exists but cannot be opened.
    """
    logger.info("etcd diagnosis performs offline analysis...")

    db_path = to_backend_file_name(data_dir)
    if not _file_exists(db_path):
        logger.info("%s does not exist", db_path)
        return None

    with BoltReader.open(db_path, lock_timeout=lock_timeout) as db:
        try:
            bucket = db.bucket(KEY_BUCKET_NAME)
            if bucket is None:
                logger.warning("%s has no %r bucket", db_path, KEY_BUCKET_NAME.decode())
                key_map: Dict[bytes, List[BucketKey]] = {}
            else:
                key_map = build_key_index(bucket.cursor())
        except BoltFormatError as e:
            raise StoreOpenError(f"Failed to read db: {db_path}, error: {e}") from e

    stats = key_stats(key_map)
    print_stats(stats, out=out)
    return stats
