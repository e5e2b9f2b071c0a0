import base64, binascii, hashlib, logging, os, secrets, time
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from chipcode_errors import CodeError, GenerationExhausted, InvalidInput, OutOfRange
from chipcode_expiration import ENCODED_BYTES, decode_expiration, encode_expiration
from chipcode_sts import bytes_to_bits, freq_monobit, runs_test, run_suite, shannon_entropy

logger = logging.getLogger(__name__)

Code = Union[str, bytes, bytearray]

def _env_int(key, default):
    try: return int(os.environ.get(key, default))
    except Exception: return default

def _env_float(key, default):
    try: return float(os.environ.get(key, default))
    except Exception: return default

def now_ms() -> int:
    return int(time.time()*1000)

# ---------- options ----------
class CodeOptions(BaseModel):
    """Thresholds for generating and validating codes."""
    model_config = ConfigDict(frozen=True)

    # fraction of the maximum (1 bit per bit)
    min_entropy: float = Field(default=0.996, gt=0.0, le=1.0)
    length: int = Field(default=32, ge=32)
    max_generate_tries: int = Field(default=500, ge=1)
    # frequency p-value must be BELOW this, runs p-value ABOVE the other
    frequency_p_value_threshold: float = Field(default=0.23, gt=0.0, le=1.0)
    runs_p_value_threshold: float = Field(default=0.61, ge=0.0, le=1.0)
    age_ms: int = Field(default=30*60*1000, ge=0)

    @classmethod
    def from_env(cls, **overrides):
        d = cls()
        values = {
            "min_entropy": _env_float("CHIPCODE_MIN_ENTROPY", d.min_entropy),
            "length": _env_int("CHIPCODE_LENGTH", d.length),
            "max_generate_tries": _env_int("CHIPCODE_MAX_GENERATE_TRIES", d.max_generate_tries),
            "frequency_p_value_threshold": _env_float("CHIPCODE_FREQUENCY_P_VALUE_THRESHOLD", d.frequency_p_value_threshold),
            "runs_p_value_threshold": _env_float("CHIPCODE_RUNS_P_VALUE_THRESHOLD", d.runs_p_value_threshold),
            "age_ms": _env_int("CHIPCODE_AGE_MS", d.age_ms),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

# ---------- text form ----------
def encode_code(data) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")

def code_bytes(code: Code) -> bytes:
    """Raw bytes of a code given as base64 text or bytes."""
    if isinstance(code, str):
        try:
            return base64.b64decode(code, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidInput(f"code is not valid base64: {e}") from e
    return bytes(code)

def get_code_length(code: Code) -> int:
    return len(code_bytes(code))

# ---------- generator ----------
class CodeGenerator:
    """
    Issues session codes: random bytes stamped with an expiration that pass the
    entropy, frequency and runs checks. Holds no state beyond its options and
    collaborators, so one instance can be shared between threads.
    """

    def __init__(self, options: Optional[CodeOptions] = None,
                 random_bytes=secrets.token_bytes, hash_factory=hashlib.sha256):
        self.options = options if options is not None else CodeOptions()
        self.random_bytes = random_bytes
        self.hash_factory = hash_factory

    def _passes(self, data: bytes) -> bool:
        o = self.options
        if len(data) < o.length:
            return False
        bits = bytes_to_bits(data)
        # frequency acceptance is p < threshold, kept as issued
        return (shannon_entropy(bits) >= o.min_entropy
                and freq_monobit(bits)["p"] < o.frequency_p_value_threshold
                and runs_test(bits)["p"] > o.runs_p_value_threshold)

    def generate(self, now: Optional[int] = None) -> str:
        """
        Return a new base64 code expiring `age_ms` after `now` (epoch ms).
        Raises GenerationExhausted after max_generate_tries + 1 rejected draws.
        """
        o = self.options
        if now is None: now = now_ms()
        expiration = now + o.age_ms
        for attempt in range(o.max_generate_tries + 1):
            candidate = bytearray(self.random_bytes(o.length))
            encode_expiration(candidate, expiration)
            if self._passes(candidate):
                logger.debug("code accepted after %d attempt(s)", attempt + 1)
                return encode_code(candidate)
            logger.debug("attempt %d rejected", attempt + 1)
        logger.warning("no code passed validation in %d attempts; randomness source or thresholds suspect",
                       o.max_generate_tries + 1)
        raise GenerationExhausted("Unable to generate a code with sufficient randomness")

    def is_valid(self, code: Code) -> bool:
        try:
            data = code_bytes(code)
        except InvalidInput:
            return False
        return self._passes(data)

    def get_expiration(self, code: Code) -> int:
        return decode_expiration(code_bytes(code))

    def is_currently_valid(self, code: Code, now: Optional[int] = None) -> bool:
        if not self.is_valid(code):
            return False
        if now is None: now = now_ms()
        return not self.get_expiration(code) < now

    def make_nonce(self, payload, code: Code, raw=False, code_as_text=False):
        """
        Anonymized identifier: hash of payload followed by the code bytes.
        With `code_as_text` the code's base64 text is hashed instead, which
        matches consumers that join payload and code as text.
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        if code_as_text:
            tail = (code if isinstance(code, str) else encode_code(code)).encode("utf-8")
        else:
            tail = code_bytes(code)
        h = self.hash_factory()
        h.update(bytes(payload) + tail)
        digest = h.digest()
        return digest if raw else base64.b64encode(digest).decode("ascii")

    def report(self, code: Code, now: Optional[int] = None) -> dict:
        o = self.options
        data = code_bytes(code)
        rep = run_suite(bytes_to_bits(data), min_entropy=o.min_entropy,
                        frequency_threshold=o.frequency_p_value_threshold,
                        runs_threshold=o.runs_p_value_threshold)
        rep["length"] = {"bytes": len(data), "min": o.length, "ok": len(data) >= o.length}
        if not rep["length"]["ok"]:
            rep["summary"]["all_pass"] = False
            rep["summary"]["failures"].insert(0, "length")
        if len(data) >= ENCODED_BYTES:
            if now is None: now = now_ms()
            rep["expiration_ms"] = decode_expiration(data)
            rep["expired"] = rep["expiration_ms"] < now
        return rep
