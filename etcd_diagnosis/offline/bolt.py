"""Read-only access to a bbolt database file.

Only what the offline analysis needs: validate the meta pages, find a top-level bucket and walk
its B+tree in key order. The file is memory-mapped read-only under a shared advisory lock.

Layout notes (little-endian):
- page header: id u64, flags u16, count u16, overflow u32
- meta (after the page header): magic, version, page size, flags, root bucket (root, sequence),
  freelist, high-water pgid, txid, checksum (FNV-1a 64 over the preceding fields)
- branch element: pos u32, ksize u32, pgid u64
- leaf element: flags u32, pos u32, ksize u32, vsize u32
- `pos` is relative to the element itself; key bytes are followed directly by value bytes
- a bucket value starts with its header (root, sequence); root 0 means the bucket's page is inline
"""

from __future__ import annotations

import errno
import fcntl
import logging
import mmap
import os
import struct
import time
from dataclasses import dataclass
from typing import Iterator, List, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

MAGIC = 0xED0CDAED
VERSION = 2

BRANCH_PAGE_FLAG = 0x01
LEAF_PAGE_FLAG = 0x02
META_PAGE_FLAG = 0x04
FREELIST_PAGE_FLAG = 0x10

BUCKET_LEAF_FLAG = 0x01

PAGE_HEADER = struct.Struct("<QHHI")
BRANCH_ELEMENT = struct.Struct("<IIQ")
LEAF_ELEMENT = struct.Struct("<IIII")
BUCKET_HEADER = struct.Struct("<QQ")
META_FIELDS = struct.Struct("<IIIIQQQQQ")
CHECKSUM = struct.Struct("<Q")

FNV64_OFFSET = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3

DEFAULT_LOCK_TIMEOUT = 5.0
_LOCK_POLL_INTERVAL = 0.05

Buffer = Union[bytes, mmap.mmap]


class StoreOpenError(OSError):
    """The backend file could not be opened for reading."""


class StoreLockTimeout(StoreOpenError):
    pass


class BoltFormatError(ValueError):
    pass


def fnv64a(data: bytes) -> int:
    h = FNV64_OFFSET
    for b in data:
        h ^= b
        h = (h * FNV64_PRIME) & 0xFFFFFFFFFFFFFFFF
    return h


@dataclass(frozen=True)
class Meta:
    page_size: int
    flags: int
    root: int
    root_sequence: int
    freelist: int
    pgid: int
    txid: int


def parse_meta(buf: Buffer, offset: int) -> Meta:
    """Parse and validate the meta page at `offset`."""
    start = offset + PAGE_HEADER.size
    end = start + META_FIELDS.size + CHECKSUM.size
    if end > len(buf):
        raise BoltFormatError("meta page is truncated")

    _, flags, _, _ = PAGE_HEADER.unpack_from(buf, offset)
    if not flags & META_PAGE_FLAG:
        raise BoltFormatError(f"page at offset {offset} is not a meta page (flags=0x{flags:x})")

    magic, version, page_size, mflags, root, seq, freelist, pgid, txid = META_FIELDS.unpack_from(buf, start)
    if magic != MAGIC:
        raise BoltFormatError("invalid database (bad magic)")
    if version != VERSION:
        raise BoltFormatError(f"version mismatch: {version}")
    (checksum,) = CHECKSUM.unpack_from(buf, start + META_FIELDS.size)
    if checksum != fnv64a(bytes(buf[start : start + META_FIELDS.size])):
        raise BoltFormatError("meta checksum mismatch")

    return Meta(
        page_size=page_size,
        flags=mflags,
        root=root,
        root_sequence=seq,
        freelist=freelist,
        pgid=pgid,
        txid=txid,
    )


class Bucket:
    def __init__(self, db: "BoltReader", root: int, inline: Optional[bytes] = None) -> None:
        self.db = db
        self.root = root
        self.inline = inline

    def items(self) -> Iterator[Tuple[bytes, Optional[bytes], int]]:
        """Yield `(key, value, flags)` in ascending key order. Nested buckets carry `value=None`."""
        if self.inline is not None:
            yield from self.db._iter_page(self.inline, 0)
        else:
            yield from self.db._iter_page(self.db._buf, self.db._page_offset(self.root))

    def bucket(self, name: bytes) -> Optional["Bucket"]:
        for key, value, flags in self.db._iter_raw(self):
            if key == name:
                if not flags & BUCKET_LEAF_FLAG:
                    raise BoltFormatError(f"{name!r} is not a bucket")
                return self.db._open_bucket(value)
        return None

    def cursor(self) -> "Cursor":
        return Cursor(self)


class Cursor:
    """Forward-only cursor: `first()` then `next()` until the key is None."""

    def __init__(self, bucket: Bucket) -> None:
        self.bucket = bucket
        self._it: Optional[Iterator[Tuple[bytes, Optional[bytes], int]]] = None

    def first(self) -> Tuple[Optional[bytes], Optional[bytes]]:
        self._it = self.bucket.items()
        return self.next()

    def next(self) -> Tuple[Optional[bytes], Optional[bytes]]:
        if self._it is None:
            return self.first()
        for key, value, _ in self._it:
            return key, value
        return None, None

    def __iter__(self) -> Iterator[Tuple[bytes, Optional[bytes]]]:
        k, v = self.first()
        while k is not None:
            yield k, v
            k, v = self.next()


class BoltReader:
    """
    Read-only bbolt handle. Use as a context manager:

        with BoltReader.open(path) as db:
            b = db.bucket(b"key")
    """

    def __init__(self, path: str, fileobj, buf: mmap.mmap, meta: Meta) -> None:
        self.path = path
        self._file = fileobj
        self._buf = buf
        self.meta = meta

    @classmethod
    def open(cls, path: str, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> "BoltReader":
        try:
            f = open(path, "rb")
        except OSError as e:
            raise StoreOpenError(f"Failed to open db: {path}, error: {e}") from e

        buf: Optional[mmap.mmap] = None
        locked = False
        try:
            _flock_shared(f.fileno(), lock_timeout, path)
            locked = True
            if os.fstat(f.fileno()).st_size == 0:
                raise StoreOpenError(f"Failed to open db: {path}, error: file is empty")
            buf = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
            meta = _select_meta(buf)
            return cls(path, f, buf, meta)
        except BoltFormatError as e:
            _release(f, buf, locked)
            raise StoreOpenError(f"Failed to open db: {path}, error: {e}") from e
        except BaseException:
            _release(f, buf, locked)
            raise

    def close(self) -> None:
        buf, self._buf = self._buf, None
        f, self._file = self._file, None
        if f is not None:
            _release(f, buf, True)

    def __enter__(self) -> "BoltReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def page_size(self) -> int:
        return self.meta.page_size

    def root_bucket(self) -> Bucket:
        return Bucket(self, self.meta.root)

    def bucket(self, name: bytes) -> Optional[Bucket]:
        return self.root_bucket().bucket(name)

    def bucket_names(self) -> List[bytes]:
        return [k for k, _, flags in self._iter_raw(self.root_bucket()) if flags & BUCKET_LEAF_FLAG]

    # -------------------------------------------------------------------------

    def _iter_raw(self, bucket: Bucket) -> Iterator[Tuple[bytes, bytes, int]]:
        if bucket.inline is not None:
            return self._iter_page(bucket.inline, 0, keep_bucket_values=True)
        return self._iter_page(self._buf, self._page_offset(bucket.root), keep_bucket_values=True)

    def _open_bucket(self, value: bytes) -> Bucket:
        if len(value) < BUCKET_HEADER.size:
            raise BoltFormatError("bucket header is truncated")
        root, _ = BUCKET_HEADER.unpack_from(value, 0)
        if root == 0:
            return Bucket(self, 0, inline=bytes(value[BUCKET_HEADER.size :]))
        return Bucket(self, root)

    def _page_offset(self, pgid: int) -> int:
        offset = pgid * self.page_size
        if pgid < 2 or offset + PAGE_HEADER.size > len(self._buf):
            raise BoltFormatError(f"page {pgid} out of range")
        return offset

    def _iter_page(
        self, buf: Buffer, offset: int, *, keep_bucket_values: bool = False
    ) -> Iterator[Tuple[bytes, Optional[bytes], int]]:
        # Depth-first over branch pages with an explicit stack; `seen` holds mmap page offsets.
        stack: List[Tuple[Buffer, int]] = [(buf, offset)]
        seen: Set[int] = set()
        while stack:
            page_buf, page_off = stack.pop()
            if page_buf is self._buf:
                if page_off in seen:
                    raise BoltFormatError(f"page cycle at pgid {page_off // self.page_size}")
                seen.add(page_off)

            _, flags, count, _ = PAGE_HEADER.unpack_from(page_buf, page_off)
            elems = page_off + PAGE_HEADER.size
            if flags & BRANCH_PAGE_FLAG:
                children = [
                    BRANCH_ELEMENT.unpack_from(page_buf, elems + i * BRANCH_ELEMENT.size)[2] for i in range(count)
                ]
                for child in reversed(children):
                    stack.append((self._buf, self._page_offset(child)))
            elif flags & LEAF_PAGE_FLAG:
                yield from self._iter_leaf(page_buf, page_off, count, keep_bucket_values)
            else:
                raise BoltFormatError(f"invalid page type at offset {page_off}: 0x{flags:x}")

    def _iter_leaf(
        self, buf: Buffer, offset: int, count: int, keep_bucket_values: bool
    ) -> Iterator[Tuple[bytes, Optional[bytes], int]]:
        elems = offset + PAGE_HEADER.size
        for i in range(count):
            elem = elems + i * LEAF_ELEMENT.size
            eflags, pos, ksize, vsize = LEAF_ELEMENT.unpack_from(buf, elem)
            kstart = elem + pos
            vend = kstart + ksize + vsize
            if vend > len(buf):
                raise BoltFormatError(f"leaf element {i} at offset {offset} runs past the end of the page")
            key = bytes(buf[kstart : kstart + ksize])
            if eflags & BUCKET_LEAF_FLAG and not keep_bucket_values:
                yield key, None, eflags
            else:
                yield key, bytes(buf[kstart + ksize : vend]), eflags


def _select_meta(buf: mmap.mmap) -> Meta:
    """Pick the valid meta page with the highest txid (page 0 tells us the page size)."""
    metas: List[Meta] = []
    errors: List[str] = []

    page_size = 0
    try:
        m0 = parse_meta(buf, 0)
        metas.append(m0)
        page_size = m0.page_size
    except BoltFormatError as e:
        errors.append(f"meta0: {e}")
        page_size = mmap.PAGESIZE

    try:
        metas.append(parse_meta(buf, page_size))
    except BoltFormatError as e:
        errors.append(f"meta1: {e}")

    if not metas:
        raise BoltFormatError("; ".join(errors))
    if errors:
        logger.warning("Using fallback meta page for bolt db: %s", "; ".join(errors))
    return max(metas, key=lambda m: m.txid)


def _flock_shared(fd: int, timeout: float, path: str) -> None:
    deadline = time.monotonic() + max(0.0, timeout)
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
            return
        except OSError as e:
            if e.errno not in (errno.EAGAIN, errno.EWOULDBLOCK, errno.EACCES):
                raise StoreOpenError(f"Failed to lock db: {path}, error: {e}") from e
        if time.monotonic() >= deadline:
            raise StoreLockTimeout(
                f"Failed to open db: {path}, error: timeout waiting for file lock (is etcd still running?)"
            )
        time.sleep(_LOCK_POLL_INTERVAL)


def _release(f, buf: Optional[mmap.mmap], locked: bool) -> None:
    try:
        if buf is not None:
            buf.close()
        if locked:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    finally:
        f.close()
