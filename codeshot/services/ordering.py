"""Deterministic ordering keys for uploaded screenshots."""

import re
import zlib

# More digits than this would not fit the sequence numbers clients send.
MAX_ORDER_DIGITS = 9

# Hash keys start above every possible numeric key.
HASH_KEY_OFFSET = 10**MAX_ORDER_DIGITS

_DIGIT_RUN = re.compile(r"\d+")


def _final_segment(ref: str) -> str:
    path = ref.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    return path.rsplit("/", 1)[-1]


def image_order_key(ref: str) -> int:
    """Return the sort key for an image reference.

    The longest digit run in the file name is read as a zero-padded
    sequence number (``0007_shot.png`` -> 7). Names without digits get
    a stable crc32 of the full reference, offset so they sort after all
    numbered images.
    """
    runs = _DIGIT_RUN.findall(_final_segment(ref))
    if runs:
        longest = max(runs, key=len)
        return int(longest[:MAX_ORDER_DIGITS])
    return HASH_KEY_OFFSET + zlib.crc32(ref.encode("utf-8"))


def sort_image_refs(refs: list[str]) -> list[str]:
    """Sort refs by order key. Equal keys keep their arrival order."""
    return sorted(refs, key=image_order_key)
