"""Revision keys of the mvcc `key` bucket.

On disk a key is `main (8 bytes, big-endian) | '_' | sub (8 bytes, big-endian)`, optionally
followed by `'t'` when the revision is a tombstone (delete).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

REV_BYTES_LEN = 8 + 1 + 8
MARKED_REV_BYTES_LEN = REV_BYTES_LEN + 1
MARK_BYTE_POSITION = REV_BYTES_LEN
MARK_TOMBSTONE = ord("t")

_INT64_BE = struct.Struct(">q")


class BucketKeyError(ValueError):
    pass


@dataclass(frozen=True, order=True)
class Revision:
    main: int
    sub: int = 0


@dataclass(frozen=True)
class BucketKey:
    revision: Revision
    tombstone: bool = False

    def __str__(self) -> str:
        suffix = "t" if self.tombstone else ""
        return f"{self.revision.main}_{self.revision.sub}{suffix}"


def bytes_to_bucket_key(raw: bytes) -> BucketKey:
    if len(raw) not in (REV_BYTES_LEN, MARKED_REV_BYTES_LEN):
        raise BucketKeyError(f"invalid revision length: {len(raw)}")
    if raw[8] != ord("_"):
        raise BucketKeyError(f"invalid separator in bucket key: {raw[8]!r}")

    tombstone = False
    if len(raw) == MARKED_REV_BYTES_LEN:
        if raw[MARK_BYTE_POSITION] != MARK_TOMBSTONE:
            raise BucketKeyError(f"unrecognized mark byte: {raw[MARK_BYTE_POSITION]!r}")
        tombstone = True

    main = _INT64_BE.unpack_from(raw, 0)[0]
    sub = _INT64_BE.unpack_from(raw, 9)[0]
    return BucketKey(revision=Revision(main=main, sub=sub), tombstone=tombstone)
