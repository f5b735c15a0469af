"""
ObjectId generation.

Identifiers are 12 bytes laid out as:

    0-3   seconds since the Unix epoch, big endian
    4-6   first 3 bytes of md5(hostname + interface addresses)
    7-8   low 16 bits of the process id, big endian
    9-11  counter, big endian, seeded randomly and incremented per call

The machine and process fingerprints are computed once when this module is
imported. The counter seed is read from the operating system's secure random
source; if that source is unavailable the import fails with
ObjectIdSeedError.
"""

from datetime import datetime, timezone
import hashlib
import ipaddress
import itertools
import os
import socket
import struct
import time
from typing import NamedTuple, Optional, Union

import psutil
from bson import ObjectId

from mongokit.utils.exceptions import InvalidObjectIdError, ObjectIdSeedError
from mongokit.utils.logger import get_logger

logger = get_logger(__name__)

OBJECT_ID_SIZE = 12
_COUNTER_MASK = 0xFFFFFF
_EMPTY_MAC = "00:00:00:00:00:00"


class ObjectIdParts(NamedTuple):
    """Decoded fields of an ObjectId."""
    timestamp: int
    machine: bytes
    process: int
    counter: int

    @property
    def generation_time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


def _read_hostname() -> Optional[str]:
    try:
        return socket.gethostname()
    except OSError as e:
        logger.debug(f"Hostname unavailable for machine fingerprint: {str(e)}")
        return None


def _read_interface_identity() -> Optional[str]:
    """
    Concatenate, per network interface, every non-loopback IP address
    followed by the interface's hardware address.

    Returns:
        The concatenated string, or None if interfaces cannot be enumerated
    """
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, RuntimeError, psutil.Error) as e:
        logger.debug(f"Network interfaces unavailable for machine fingerprint: {str(e)}")
        return None

    parts = []
    for addresses in interfaces.values():
        mac = ""
        for addr in addresses:
            if addr.family == psutil.AF_LINK:
                if addr.address and addr.address != _EMPTY_MAC:
                    mac = addr.address
            elif addr.family in (socket.AF_INET, socket.AF_INET6):
                try:
                    ip = ipaddress.ip_address(addr.address.split("%", 1)[0])
                except ValueError:
                    continue
                if not ip.is_loopback:
                    parts.append(str(ip))
        parts.append(mac)
    return "".join(parts)


def compute_machine_fingerprint() -> bytes:
    """
    Compute the 3-byte machine fingerprint.

    Hostname and interface lookups are best effort: whatever is missing is
    left out of the hash input. A host with no hostname and no usable
    interfaces gets the fingerprint of an empty buffer.

    Returns:
        First 3 bytes of the md5 digest of the host identity
    """
    source = "".join(
        part for part in (_read_hostname(), _read_interface_identity()) if part
    )
    return hashlib.md5(source.encode("utf-8")).digest()[:3]


def compute_process_fingerprint() -> int:
    """Return the process id; only its low 16 bits end up in an ObjectId."""
    return os.getpid()


def seed_counter() -> int:
    """
    Read a random 32-bit counter seed from the secure random source.

    Raises:
        ObjectIdSeedError: If the secure random source is unavailable
    """
    try:
        raw = os.urandom(4)
    except (NotImplementedError, OSError) as e:
        raise ObjectIdSeedError(f"cannot read random object id: {str(e)}") from e
    return struct.unpack("<I", raw)[0]


class ObjectIdGenerator:
    """
    Produces 12-byte ObjectIds.

    generate() is safe to call from any number of threads without locking:
    the only mutable state is an itertools.count, whose next() is a single
    atomic step under the interpreter lock.
    """

    def __init__(
        self,
        machine: Optional[bytes] = None,
        pid: Optional[int] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize the generator.

        Args:
            machine: 3-byte machine fingerprint (computed if not provided)
            pid: Process id (read from the OS if not provided)
            seed: Counter seed (read from the secure random source if not provided)

        Raises:
            ObjectIdSeedError: If no seed is given and the random source fails
            ValueError: If machine is not exactly 3 bytes
        """
        if machine is None:
            machine = compute_machine_fingerprint()
        if len(machine) != 3:
            raise ValueError("machine fingerprint must be 3 bytes")

        self._machine = bytes(machine)
        self._pid = compute_process_fingerprint() if pid is None else pid
        self._counter = itertools.count((seed_counter() if seed is None else seed) + 1)

    @property
    def machine(self) -> bytes:
        return self._machine

    @property
    def pid(self) -> int:
        return self._pid

    def refresh_pid(self) -> None:
        """Re-read the process id, for use in a freshly forked child."""
        self._pid = compute_process_fingerprint()

    def generate(self) -> bytes:
        """
        Generate a new ObjectId.

        Returns:
            12 raw bytes: timestamp, machine, pid, counter
        """
        timestamp = int(time.time()) & 0xFFFFFFFF
        inc = next(self._counter) & _COUNTER_MASK
        return (
            struct.pack(">I", timestamp)
            + self._machine
            + struct.pack(">H", self._pid & 0xFFFF)
            + struct.pack(">I", inc)[1:]
        )


_generator = ObjectIdGenerator()

if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_generator.refresh_pid)


def generate() -> bytes:
    """Generate 12 raw ObjectId bytes from the process-wide generator."""
    return _generator.generate()


def new_object_id() -> ObjectId:
    """Generate a new ObjectId suitable for use as a document _id."""
    return ObjectId(_generator.generate())


def parse_object_id(value: Union[ObjectId, bytes, str]) -> ObjectIdParts:
    """
    Split an ObjectId into its fields.

    Args:
        value: An ObjectId, 12 raw bytes, or the 24-character hex form

    Returns:
        ObjectIdParts with timestamp, machine, process and counter

    Raises:
        InvalidObjectIdError: If value is not a well-formed ObjectId
    """
    if isinstance(value, ObjectId):
        raw = value.binary
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        if len(value) != OBJECT_ID_SIZE * 2:
            raise InvalidObjectIdError(value)
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            raise InvalidObjectIdError(value)
    else:
        raise InvalidObjectIdError(value)

    if len(raw) != OBJECT_ID_SIZE:
        raise InvalidObjectIdError(value)

    timestamp, = struct.unpack(">I", raw[0:4])
    process, = struct.unpack(">H", raw[7:9])
    counter = int.from_bytes(raw[9:12], "big")
    return ObjectIdParts(
        timestamp=timestamp,
        machine=raw[4:7],
        process=process,
        counter=counter
    )
