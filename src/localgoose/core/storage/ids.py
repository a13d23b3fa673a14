"""Identifier generation for stored records."""

import itertools
import os
import time

_counter = itertools.count(int.from_bytes(os.urandom(3), "big"))
_process_random = os.urandom(5)


def new_id() -> str:
    """Generate a 24-char hex string laid out like a Mongo ObjectId.

    4 bytes of seconds since the epoch, 5 random bytes fixed per process and a
    3-byte rolling counter, so ids sort roughly by creation time.
    """
    ts = int(time.time()) & 0xFFFFFFFF
    count = next(_counter) & 0xFFFFFF
    return f"{ts:08x}{_process_random.hex()}{count:06x}"


__all__ = ["new_id"]
