import math
import numpy as np

# Abramowitz-Stegun 7.1.26; max abs error ~1.5e-7
A1, A2, A3, A4, A5 = 0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429
P = 0.3275911

def erf(x):
    sign = -1.0 if x < 0 else 1.0
    x = abs(x)
    t = 1.0/(1.0 + P*x)
    y = 1.0 - (((((A5*t + A4)*t) + A3)*t + A2)*t + A1)*t*math.exp(-x*x)
    return sign*y

def erfc(x): return 1.0 - erf(x)

# bits
def bytes_to_bits(data):
    """Expand bytes into a uint8 array of 0/1, most significant bit first."""
    return np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8), bitorder="big")

def bits_from_string(s):
    s = s.strip()
    if s.strip("01"):
        raise ValueError("bit string may only contain 0 and 1")
    return np.frombuffer(s.encode("ascii"), dtype=np.uint8) - ord("0")

# tests
def shannon_entropy(bits):
    """
    Shannon entropy per bit of a 0/1 sequence, in [0, 1].
    Only observed symbols contribute, so a constant sequence scores 0.
    """
    n = len(bits)
    if n == 0: return 0.0
    counts = np.bincount(np.asarray(bits, dtype=np.int64), minlength=2)
    p = counts[counts > 0] / float(n)
    return float(-np.sum(p*np.log2(p))) + 0.0

def freq_monobit(bits):
    # p = exp(-2 s^2): close to 1 when the +-1 sum is balanced
    n = len(bits)
    if n == 0: return {"p": 0.0, "stat": 0.0}
    y = np.asarray(bits, dtype=np.int64)*2 - 1
    s = int(np.sum(y))
    sobs = abs(s)/math.sqrt(n)
    p = math.exp(-2.0*sobs*sobs)
    return {"p": float(p), "stat": float(sobs)}

def runs_test(bits):
    n = len(bits)
    if n < 2: return {"p": 0.0, "stat": 0.0, "note": "short"}
    bits = np.asarray(bits, dtype=np.uint8)
    ones = int(np.sum(bits))
    pi = ones/(n*1.0)
    tau = 2.0/math.sqrt(n)
    if abs(pi - 0.5) >= tau:
        return {"p": 0.0, "stat": float(pi), "note": "pi off 0.5"}
    if ones == 0 or ones == n:
        return {"p": 0.0, "stat": 1, "pi": pi, "note": "constant"}
    v = 1 + int(np.sum(bits[1:] != bits[:-1]))
    num = abs(v - 2.0*n*pi*(1.0 - pi))
    den = 2.0*math.sqrt(2.0*n)*pi*(1.0 - pi)
    p = erfc(num/den)
    return {"p": float(p), "stat": int(v), "pi": pi}

def run_suite(bits, min_entropy=0.996, frequency_threshold=0.23, runs_threshold=0.61):
    """
    Score a bit sequence the way codes are accepted: entropy at or above
    `min_entropy`, monobit p below `frequency_threshold`, runs p above
    `runs_threshold`.
    """
    results, fails = {}, []
    h = shannon_entropy(bits)
    results["shannon_entropy"] = {"stat": h, "threshold": min_entropy}
    if h < min_entropy: fails.append("shannon_entropy")
    r = freq_monobit(bits); r["threshold"] = frequency_threshold
    results["frequency_monobit"] = r
    if not r["p"] < frequency_threshold: fails.append("frequency_monobit")
    r = runs_test(bits); r["threshold"] = runs_threshold
    results["runs_test"] = r
    if not r["p"] > runs_threshold: fails.append("runs_test")
    return {
        "suite": "chipcode-sts",
        "n_bits": int(len(bits)),
        "results": results,
        "summary": {"all_pass": len(fails)==0, "failures": fails}
    }
