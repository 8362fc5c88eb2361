from __future__ import annotations

import fcntl
import io
import os

import pytest

from boltfile import PAGE_SIZE, kv_bytes, rev_key, write_backend


def _lines(buf: io.StringIO) -> list:
    return buf.getvalue().splitlines()


def test_backend_file_name_matches_server_layout() -> None:
    from etcd_diagnosis.offline.analysis import to_backend_file_name

    assert to_backend_file_name("/var/lib/etcd") == os.path.join("/var/lib/etcd", "member", "snap", "db")


def test_analyze_offline_orders_keys_by_revision_count(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    write_backend(
        tmp_path,
        [
            (rev_key(2), kv_bytes(b"a", 2)),
            (rev_key(3), kv_bytes(b"b", 3)),
            (rev_key(4), kv_bytes(b"a", 4, version=2)),
            (rev_key(5, tombstone=True), kv_bytes(b"a", 5)),
        ],
    )

    out = io.StringIO()
    stats = analyze_offline(str(tmp_path), out=out)

    assert _lines(out) == ["All key stats:", "a: 3", "b: 1"]
    assert [(s.key, s.rev_count) for s in stats] == [("a", 3), ("b", 1)]


def test_analyze_offline_missing_data_dir_is_not_an_error(tmp_path, caplog) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    out = io.StringIO()
    with caplog.at_level("INFO"):
        assert analyze_offline(str(tmp_path / "nope"), out=out) is None

    assert out.getvalue() == ""
    assert any("does not exist" in r.getMessage() for r in caplog.records)


def test_analyze_offline_skips_undecodable_entries(tmp_path, caplog) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    write_backend(
        tmp_path,
        [
            (rev_key(2), kv_bytes(b"a", 2)),
            (rev_key(3), b"\x0a\x20truncated"),  # length-delimited field longer than the payload
            (b"not-a-revision", kv_bytes(b"a", 9)),
            (rev_key(4), kv_bytes(b"c", 4)),
        ],
    )

    out = io.StringIO()
    stats = analyze_offline(str(tmp_path), out=out)

    assert sorted((s.key, s.rev_count) for s in stats) == [("a", 1), ("c", 1)]
    assert "Failed to unmarshal key" in caplog.text
    assert "Failed to decode revision" in caplog.text


def test_analyze_offline_ties_are_ordered_by_key(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    write_backend(
        tmp_path,
        [
            (rev_key(2), kv_bytes(b"zeta", 2)),
            (rev_key(3), kv_bytes(b"alpha", 3)),
            (rev_key(4), kv_bytes(b"mid", 4)),
        ],
    )

    out = io.StringIO()
    analyze_offline(str(tmp_path), out=out)
    assert _lines(out) == ["All key stats:", "alpha: 1", "mid: 1", "zeta: 1"]


def test_analyze_offline_walks_branch_pages_in_key_order(tmp_path) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader

    revisions = [(rev_key(i), kv_bytes(f"k{i % 7}".encode(), i)) for i in range(2, 302)]
    path = write_backend(tmp_path, revisions, leaf_max=16)

    with BoltReader.open(path) as db:
        keys = [k for k, _ in db.bucket(b"key").cursor()]

    assert keys == [k for k, _ in revisions]


def test_analyze_offline_counts_across_branch_pages(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    revisions = [(rev_key(i), kv_bytes(b"hot" if i % 3 else b"cold", i)) for i in range(1, 91)]
    write_backend(tmp_path, revisions, leaf_max=8)

    out = io.StringIO()
    analyze_offline(str(tmp_path), out=out)
    assert _lines(out) == ["All key stats:", "hot: 60", "cold: 30"]


def test_inline_bucket_and_other_buckets(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline
    from etcd_diagnosis.offline.bolt import BoltReader

    path = write_backend(
        tmp_path,
        [(rev_key(2), kv_bytes(b"only", 2))],
        extra_buckets={b"meta": [(b"consistent_index", b"\x00" * 8)], b"members": []},
        inline=[b"key"],
    )

    with BoltReader.open(path) as db:
        assert db.bucket_names() == [b"key", b"members", b"meta"]
        assert db.bucket(b"missing") is None

    out = io.StringIO()
    analyze_offline(str(tmp_path), out=out)
    assert _lines(out) == ["All key stats:", "only: 1"]


def test_large_values_span_overflow_pages(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    big = b"x" * 10000
    write_backend(tmp_path, [(rev_key(2), kv_bytes(b"big", 2, value=big)), (rev_key(3), kv_bytes(b"big", 3))])

    out = io.StringIO()
    analyze_offline(str(tmp_path), out=out)
    assert _lines(out) == ["All key stats:", "big: 2"]


def test_missing_key_bucket_prints_empty_stats(tmp_path) -> None:
    from boltfile import BoltFileWriter

    from etcd_diagnosis.offline.analysis import analyze_offline

    path = tmp_path / "member" / "snap" / "db"
    BoltFileWriter().write(str(path), {b"meta": []})

    out = io.StringIO()
    assert analyze_offline(str(tmp_path), out=out) == []
    assert _lines(out) == ["All key stats:"]


def test_falls_back_to_older_meta_page(tmp_path, caplog) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader

    path = write_backend(tmp_path, [(rev_key(2), kv_bytes(b"a", 2))], corrupt_meta1=True)

    with BoltReader.open(path) as db:
        assert db.meta.txid == 1
        assert [k for k, _ in db.bucket(b"key").cursor()] == [rev_key(2)]
    assert "fallback meta page" in caplog.text


def test_garbage_file_raises_store_open_error(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline
    from etcd_diagnosis.offline.bolt import StoreOpenError

    db = tmp_path / "member" / "snap" / "db"
    db.parent.mkdir(parents=True)
    db.write_bytes(b"\x01" * 8192)

    with pytest.raises(StoreOpenError):
        analyze_offline(str(tmp_path), out=io.StringIO())


def test_empty_file_raises_store_open_error(tmp_path) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader, StoreOpenError

    db = tmp_path / "db"
    db.write_bytes(b"")

    with pytest.raises(StoreOpenError):
        BoltReader.open(str(db))


def test_exclusive_lock_held_by_server_times_out(tmp_path) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader, StoreLockTimeout

    path = write_backend(tmp_path, [(rev_key(2), kv_bytes(b"a", 2))])

    with open(path, "rb") as holder:
        fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
        try:
            with pytest.raises(StoreLockTimeout):
                BoltReader.open(path, lock_timeout=0.1)
        finally:
            fcntl.flock(holder.fileno(), fcntl.LOCK_UN)


def test_reader_releases_lock_on_close(tmp_path) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader

    path = write_backend(tmp_path, [(rev_key(2), kv_bytes(b"a", 2))])

    with BoltReader.open(path):
        pass

    with open(path, "rb") as f:
        # Would raise BlockingIOError if the shared lock were still held.
        fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def test_cursor_first_next_protocol(tmp_path) -> None:
    from etcd_diagnosis.offline.bolt import BoltReader

    path = write_backend(tmp_path, [(rev_key(2), b"one"), (rev_key(3), b"two")])

    with BoltReader.open(path) as db:
        c = db.bucket(b"key").cursor()
        assert c.first() == (rev_key(2), b"one")
        assert c.next() == (rev_key(3), b"two")
        assert c.next() == (None, None)


def _point_branch_at_itself(path: str) -> int:
    from etcd_diagnosis.offline import bolt

    with open(path, "r+b") as f:
        data = bytearray(f.read())
        for off in range(0, len(data), PAGE_SIZE):
            pgid, flags, _, _ = bolt.PAGE_HEADER.unpack_from(data, off)
            if flags & bolt.BRANCH_PAGE_FLAG:
                elem = off + bolt.PAGE_HEADER.size
                pos, ksize, _ = bolt.BRANCH_ELEMENT.unpack_from(data, elem)
                bolt.BRANCH_ELEMENT.pack_into(data, elem, pos, ksize, pgid)
                f.seek(0)
                f.write(data)
                return pgid
    raise AssertionError("no branch page in file")


def test_branch_page_cycle_is_reported_as_store_open_error(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline
    from etcd_diagnosis.offline.bolt import StoreOpenError

    revisions = [(rev_key(i), kv_bytes(b"k", i)) for i in range(2, 40)]
    pgid = _point_branch_at_itself(write_backend(tmp_path, revisions, leaf_max=8))

    with pytest.raises(StoreOpenError, match=f"page cycle at pgid {pgid}"):
        analyze_offline(str(tmp_path), out=io.StringIO())


def test_branch_page_cycle_exits_nonzero_from_cli(tmp_path) -> None:
    import main

    revisions = [(rev_key(i), kv_bytes(b"k", i)) for i in range(2, 40)]
    _point_branch_at_itself(write_backend(tmp_path, revisions, leaf_max=8))

    assert main.main(["--offline", "--data-dir", str(tmp_path)]) == 1


def test_keys_that_render_alike_are_counted_separately(tmp_path) -> None:
    from etcd_diagnosis.offline.analysis import analyze_offline

    write_backend(
        tmp_path,
        [
            (rev_key(2), kv_bytes(b"\xff", 2)),
            (rev_key(3), kv_bytes(b"\\xff", 3)),
        ],
    )

    out = io.StringIO()
    stats = analyze_offline(str(tmp_path), out=out)

    assert [(s.key, s.rev_count) for s in stats] == [("\\xff", 1), ("\\xff", 1)]
    assert _lines(out) == ["All key stats:", "\\xff: 1", "\\xff: 1"]


def test_key_index_groups_by_raw_key_bytes() -> None:
    from etcd_diagnosis.offline.analysis import build_key_index

    index = build_key_index(
        [
            (rev_key(2), kv_bytes(b"\xff", 2)),
            (rev_key(3), kv_bytes(b"\\xff", 3)),
            (rev_key(4), kv_bytes(b"\xff", 4)),
        ]
    )
    assert {k: len(v) for k, v in index.items()} == {b"\xff": 2, b"\\xff": 1}
