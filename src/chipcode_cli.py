#!/usr/bin/env python3
import argparse, datetime, json, logging, secrets, sys

from chipcode_core import CodeError, CodeGenerator, CodeOptions, InvalidInput, now_ms
from chipcode_expiration import encode_expiration
from chipcode_sts import bytes_to_bits, freq_monobit, runs_test, shannon_entropy

def _generator(args):
    opts = CodeOptions.from_env(age_ms=getattr(args, "age_ms", None),
                                length=getattr(args, "length", None))
    return CodeGenerator(opts)

def _iso(ms):
    dt = datetime.datetime.fromtimestamp(ms/1000.0, tz=datetime.timezone.utc)
    return dt.replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")

def cmd_generate(args):
    gen = _generator(args)
    try:
        for _ in range(args.count):
            print(gen.generate(args.now))
    except CodeError as e:
        print(str(e), file=sys.stderr)
        return 2
    return 0

def cmd_check(args):
    gen = _generator(args)
    try:
        report = gen.report(args.code, now=args.now)
    except InvalidInput as e:
        print(json.dumps({"ok": False, "errors": [str(e)]}, indent=2))
        return 2
    ok = report["summary"]["all_pass"] and not report.get("expired", True)
    report["ok"] = ok
    print(json.dumps(report, indent=2))
    return 0 if ok else 2

def cmd_expiration(args):
    gen = _generator(args)
    try:
        ms = gen.get_expiration(args.code)
    except InvalidInput as e:
        print(str(e), file=sys.stderr)
        return 2
    print(json.dumps({"expiration_ms": ms, "expiration": _iso(ms)}, indent=2))
    return 0

def cmd_nonce(args):
    gen = _generator(args)
    try:
        nonce = gen.make_nonce(args.payload, args.code, code_as_text=args.text)
    except CodeError as e:
        print(str(e), file=sys.stderr)
        return 2
    print(nonce)
    return 0

def cmd_survey(args):
    # how often fresh random stamped buffers pass each check
    o = _generator(args).options
    stamp = now_ms() + o.age_ms
    counts = {"shannon_entropy": 0, "frequency_monobit": 0, "runs_test": 0, "all": 0}
    for _ in range(args.n):
        buf = bytearray(secrets.token_bytes(o.length))
        encode_expiration(buf, stamp)
        bits = bytes_to_bits(buf)
        passed = [
            shannon_entropy(bits) >= o.min_entropy,
            freq_monobit(bits)["p"] < o.frequency_p_value_threshold,
            runs_test(bits)["p"] > o.runs_p_value_threshold,
        ]
        for k, ok in zip(("shannon_entropy", "frequency_monobit", "runs_test"), passed):
            counts[k] += int(ok)
        counts["all"] += int(all(passed))
    print(json.dumps({"n": args.n, "passed": counts, "options": o.model_dump()}, indent=2))
    return 0

def main(argv=None):
    p = argparse.ArgumentParser(prog="chipcode")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    pg = sub.add_parser("generate", help="issue new codes")
    pg.add_argument("--count", type=int, default=1)
    pg.add_argument("--age-ms", type=int, default=None)
    pg.add_argument("--length", type=int, default=None)
    pg.add_argument("--now", type=int, default=None, help="epoch ms (default: current time)")
    pg.set_defaults(func=cmd_generate)

    pc = sub.add_parser("check", help="print the validation report of a code")
    pc.add_argument("code")
    pc.add_argument("--now", type=int, default=None)
    pc.set_defaults(func=cmd_check)

    pe = sub.add_parser("expiration", help="print the expiration stamped into a code")
    pe.add_argument("code")
    pe.set_defaults(func=cmd_expiration)

    pn = sub.add_parser("nonce", help="derive an anonymized nonce from a payload and a code")
    pn.add_argument("payload")
    pn.add_argument("code")
    pn.add_argument("--text", action="store_true", help="hash the code's base64 text instead of its bytes")
    pn.set_defaults(func=cmd_nonce)

    ps = sub.add_parser("survey", help="count how many random codes pass each check")
    ps.add_argument("--n", type=int, default=1000)
    ps.add_argument("--age-ms", type=int, default=None)
    ps.set_defaults(func=cmd_survey)

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    return args.func(args)

if __name__ == "__main__":
    sys.exit(main())
