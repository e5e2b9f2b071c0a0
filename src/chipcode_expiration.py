"""
Expiration stamping for session codes.

The expiration (whole minutes since the Unix epoch) is masked with one of four
fixed 30-bit patterns and spread over the least significant bit of the first
32 bytes of the code. The two top bits of the 32-bit encoding carry the index
of the pattern, which is chosen to maximize the encoding's own bit entropy.
"""
import logging
import numpy as np

from chipcode_errors import InvalidInput, OutOfRange
from chipcode_sts import bytes_to_bits, shannon_entropy

logger = logging.getLogger(__name__)

# top 2 bits are ignored; they are replaced by the pattern index
PATTERNS = (0x15A45D17, 0x2A5BA2E8, 0x2AAAAAAA, 0x15555555)
MASK30 = 0x3FFFFFFF
MINUTE_MS = 60000
ENCODED_BYTES = 32

def _require_length(buf):
    if len(buf) < ENCODED_BYTES:
        raise InvalidInput(f"buffer must be at least {ENCODED_BYTES} bytes, got {len(buf)}")

def candidate_encodings(minutes):
    return [(p & MASK30) ^ ((i << 30) | minutes) for i, p in enumerate(PATTERNS)]

def encoding_entropy(encoding):
    return shannon_entropy(bytes_to_bits(encoding.to_bytes(4, "big")))

def encode_expiration(buf, expiration_ms):
    """
    Stamp `expiration_ms` into `buf` in place (a bytearray or other mutable
    buffer). Only bit 0 of buf[0..31] changes.
    """
    _require_length(buf)
    minutes = int(expiration_ms // MINUTE_MS)
    if minutes > MASK30 or minutes < 0:
        raise OutOfRange(f"expiration {expiration_ms} ms is outside the encodable range")

    encodings = candidate_encodings(minutes)
    entropies = [encoding_entropy(e) for e in encodings]
    best = int(np.argmax(entropies))  # first maximum wins ties
    encoding = encodings[best]
    logger.debug("expiration %d min: pattern %d, entropy %.4f", minutes, best, entropies[best])

    # bit i of the encoding goes to the LSB of byte i
    lsb = np.unpackbits(np.frombuffer(encoding.to_bytes(4, "little"), dtype=np.uint8), bitorder="little")
    head = np.frombuffer(bytes(buf[:ENCODED_BYTES]), dtype=np.uint8)
    buf[:ENCODED_BYTES] = ((head & 0xFE) | lsb).tobytes()

def decode_expiration(buf):
    """Return the epoch-millisecond expiration stamped into `buf`."""
    _require_length(buf)
    lsb = np.frombuffer(bytes(buf[:ENCODED_BYTES]), dtype=np.uint8) & 1
    encoding = int.from_bytes(np.packbits(lsb, bitorder="little").tobytes(), "little")
    pattern = (encoding >> 30) & 0x03
    minutes = (PATTERNS[pattern] & MASK30) ^ (encoding & MASK30)
    return minutes*MINUTE_MS
