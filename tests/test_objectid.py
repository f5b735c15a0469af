from __future__ import annotations

import hashlib
import socket
import struct
import time
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import psutil
import pytest
from bson import ObjectId

from mongokit import objectid
from mongokit.objectid import (
    ObjectIdGenerator,
    compute_machine_fingerprint,
    generate,
    new_object_id,
    parse_object_id,
    seed_counter,
)
from mongokit.utils.exceptions import InvalidObjectIdError, ObjectIdSeedError


def _counter(raw: bytes) -> int:
    return int.from_bytes(raw[9:12], "big")


def _fake_clock(monkeypatch, start: float) -> SimpleNamespace:
    clock = SimpleNamespace(now=start)
    monkeypatch.setattr(objectid, "time", SimpleNamespace(time=lambda: clock.now))
    return clock


def test_generate_returns_twelve_bytes():
    raw = generate()
    assert isinstance(raw, bytes)
    assert len(raw) == 12


def test_fingerprint_fields_fixed_across_calls():
    ids = [generate() for _ in range(1000)]
    fingerprints = {raw[4:9] for raw in ids}
    assert len(fingerprints) == 1


def test_fingerprint_matches_machine_and_pid():
    parts = parse_object_id(generate())
    assert parts.machine == objectid._generator.machine
    assert parts.process == objectid._generator.pid & 0xFFFF


def test_counter_increments_by_one():
    first = generate()
    second = generate()
    assert _counter(second) == (_counter(first) + 1) % (1 << 24)


def test_counter_starts_after_seed():
    generator = ObjectIdGenerator(machine=b"\x01\x02\x03", pid=1, seed=41)
    assert _counter(generator.generate()) == 42
    assert _counter(generator.generate()) == 43


def test_counter_wraps_at_24_bits():
    generator = ObjectIdGenerator(machine=b"\x01\x02\x03", pid=1, seed=(1 << 24) - 2)
    assert _counter(generator.generate()) == (1 << 24) - 1
    assert _counter(generator.generate()) == 0
    assert _counter(generator.generate()) == 1


def test_counter_wraps_past_32_bit_seed():
    generator = ObjectIdGenerator(machine=b"\x01\x02\x03", pid=1, seed=0xFFFFFFFF)
    assert _counter(generator.generate()) == 0


def test_process_fingerprint_keeps_low_16_bits():
    generator = ObjectIdGenerator(machine=b"\xaa\xbb\xcc", pid=0x12345, seed=0)
    raw = generator.generate()
    assert raw[4:7] == b"\xaa\xbb\xcc"
    assert raw[7:9] == b"\x23\x45"


def test_machine_fingerprint_must_be_three_bytes():
    with pytest.raises(ValueError):
        ObjectIdGenerator(machine=b"\x01\x02", pid=1, seed=0)


def test_concurrent_generation_is_unique():
    workers = 50
    per_worker = 2000

    def produce(_):
        return [generate() for _ in range(per_worker)]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        batches = list(pool.map(produce, range(workers)))

    ids = [raw for batch in batches for raw in batch]
    assert len(ids) == workers * per_worker
    assert len(set(ids)) == len(ids)


def test_timestamp_matches_wall_clock():
    before = int(time.time())
    raw = generate()
    after = int(time.time())

    timestamp, = struct.unpack(">I", raw[:4])
    assert before - 1 <= timestamp <= after + 1


def test_timestamp_truncates_to_seconds(monkeypatch):
    _fake_clock(monkeypatch, 1700000000.987)
    generator = ObjectIdGenerator(machine=b"\x00\x00\x00", pid=7, seed=0)
    assert parse_object_id(generator.generate()).timestamp == 1700000000


def test_ids_two_seconds_apart(monkeypatch):
    clock = _fake_clock(monkeypatch, 1700000000.0)
    generator = ObjectIdGenerator(machine=b"\x10\x20\x30", pid=99, seed=500)

    first = generator.generate()
    clock.now += 2
    second = generator.generate()

    assert parse_object_id(second).timestamp - parse_object_id(first).timestamp == 2
    assert first[4:9] == second[4:9]


def test_sorting_by_bytes_follows_generation_order(monkeypatch):
    clock = _fake_clock(monkeypatch, 1700000000.0)
    generator = ObjectIdGenerator(machine=b"\x10\x20\x30", pid=99, seed=0)

    generated = []
    for _ in range(5):
        generated.extend(generator.generate() for _ in range(3))
        clock.now += 1

    assert sorted(generated) == generated


def test_hex_round_trip():
    raw = generate()
    text = raw.hex()
    assert len(text) == 24
    assert bytes.fromhex(text) == raw
    assert ObjectId(text).binary == raw


def test_new_object_id_is_bson_object_id():
    oid = new_object_id()
    assert isinstance(oid, ObjectId)
    assert len(str(oid)) == 24
    assert oid.binary[4:9] == generate()[4:9]


def test_parse_object_id_accepts_all_forms():
    oid = new_object_id()
    expected = parse_object_id(oid.binary)

    assert parse_object_id(oid) == expected
    assert parse_object_id(str(oid)) == expected
    assert parse_object_id(bytearray(oid.binary)) == expected
    assert expected.generation_time == oid.generation_time


@pytest.mark.parametrize("value", ["xyz", "zz" * 12, b"short", 12345, None])
def test_parse_object_id_rejects_malformed(value):
    with pytest.raises(InvalidObjectIdError):
        parse_object_id(value)


def test_machine_fingerprint_hashes_host_identity(monkeypatch):
    interfaces = {
        "lo": [
            SimpleNamespace(family=socket.AF_INET, address="127.0.0.1"),
            SimpleNamespace(family=socket.AF_INET6, address="::1"),
            SimpleNamespace(family=psutil.AF_LINK, address="00:00:00:00:00:00"),
        ],
        "eth0": [
            SimpleNamespace(family=socket.AF_INET, address="10.0.0.5"),
            SimpleNamespace(family=socket.AF_INET6, address="fe80::1%eth0"),
            SimpleNamespace(family=psutil.AF_LINK, address="aa:bb:cc:dd:ee:ff"),
        ],
    }
    monkeypatch.setattr(objectid.socket, "gethostname", lambda: "host-a")
    monkeypatch.setattr(objectid.psutil, "net_if_addrs", lambda: interfaces)

    expected = hashlib.md5(b"host-a10.0.0.5fe80::1aa:bb:cc:dd:ee:ff").digest()[:3]
    assert compute_machine_fingerprint() == expected


def test_machine_fingerprint_degrades_without_host_identity(monkeypatch):
    def unavailable(*args, **kwargs):
        raise OSError("unavailable")

    monkeypatch.setattr(objectid.socket, "gethostname", unavailable)
    monkeypatch.setattr(objectid.psutil, "net_if_addrs", unavailable)

    assert compute_machine_fingerprint() == hashlib.md5(b"").digest()[:3]


def test_machine_fingerprint_uses_hostname_when_interfaces_fail(monkeypatch):
    def unavailable():
        raise OSError("no interfaces")

    monkeypatch.setattr(objectid.socket, "gethostname", lambda: "host-b")
    monkeypatch.setattr(objectid.psutil, "net_if_addrs", unavailable)

    assert compute_machine_fingerprint() == hashlib.md5(b"host-b").digest()[:3]


def test_seed_counter_reads_four_random_bytes(monkeypatch):
    monkeypatch.setattr(objectid.os, "urandom", lambda n: b"\x01\x00\x00\x00"[:n])
    assert seed_counter() == 1


def test_seed_failure_is_fatal(monkeypatch):
    def no_entropy(n):
        raise NotImplementedError("no secure random source")

    monkeypatch.setattr(objectid.os, "urandom", no_entropy)

    with pytest.raises(ObjectIdSeedError):
        seed_counter()
    with pytest.raises(ObjectIdSeedError):
        ObjectIdGenerator(machine=b"\x01\x02\x03", pid=1)


def test_refresh_pid_reads_current_process(monkeypatch):
    generator = ObjectIdGenerator(machine=b"\x01\x02\x03", pid=1, seed=0)
    monkeypatch.setattr(objectid.os, "getpid", lambda: 0xBEEF)

    generator.refresh_pid()

    assert generator.pid == 0xBEEF
    assert generator.generate()[7:9] == b"\xbe\xef"


def test_machine_fingerprint_survives_psutil_errors(monkeypatch):
    def denied():
        raise psutil.AccessDenied()

    monkeypatch.setattr(objectid.socket, "gethostname", lambda: "host-c")
    monkeypatch.setattr(objectid.psutil, "net_if_addrs", denied)

    assert compute_machine_fingerprint() == hashlib.md5(b"host-c").digest()[:3]
