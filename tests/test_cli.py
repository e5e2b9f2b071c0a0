import json
from chipcode_cli import main
from chipcode_core import CodeGenerator

INVALID_CODE = "AABBCCDDEEFFGGHHIIJJKKLLMMNNOOPPQQRRSTTUUVV="
NOW = 1707973745000

def test_generate_and_check(capsys):
    assert main(["generate", "--count", "2", "--age-ms", "600000", "--now", str(NOW)]) == 0
    codes = capsys.readouterr().out.split()
    assert len(codes) == 2 and codes[0] != codes[1]
    gen = CodeGenerator()
    assert all(gen.is_valid(c) for c in codes)

    assert main(["check", codes[0], "--now", str(NOW)]) == 0
    rep = json.loads(capsys.readouterr().out)
    assert rep["ok"] is True and rep["expired"] is False

    assert main(["check", codes[0], "--now", str(NOW + 3600000)]) == 2
    assert json.loads(capsys.readouterr().out)["expired"] is True

def test_check_rejects_non_random_code(capsys):
    assert main(["check", INVALID_CODE]) == 2
    rep = json.loads(capsys.readouterr().out)
    assert rep["ok"] is False and rep["summary"]["failures"]

def test_check_bad_base64(capsys):
    assert main(["check", "***"]) == 2
    assert json.loads(capsys.readouterr().out)["ok"] is False

def test_expiration(capsys):
    code = CodeGenerator().generate(NOW)
    assert main(["expiration", code]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["expiration_ms"] == ((NOW + 1800000)//60000)*60000
    assert out["expiration"] == "2024-02-15T05:39:00Z"

def test_nonce(capsys):
    gen = CodeGenerator()
    code = gen.generate(NOW)
    assert main(["nonce", "user-42", code]) == 0
    assert capsys.readouterr().out.strip() == gen.make_nonce("user-42", code)

def test_survey(capsys):
    assert main(["survey", "--n", "50"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["n"] == 50
    assert 0 <= out["passed"]["all"] <= min(out["passed"][k] for k in ("shannon_entropy", "frequency_monobit", "runs_test"))

def test_nonce_bad_code_exits_2(capsys):
    assert main(["nonce", "user-42", "***"]) == 2
    captured = capsys.readouterr()
    assert captured.out == "" and "base64" in captured.err

def test_nonce_text_form(capsys):
    code = CodeGenerator().generate(NOW)
    assert main(["nonce", "user-42", code, "--text"]) == 0
    assert capsys.readouterr().out.strip() == CodeGenerator().make_nonce("user-42", code, code_as_text=True)

def test_generate_exhausted_exits_2(monkeypatch, capsys):
    monkeypatch.setenv("CHIPCODE_MIN_ENTROPY", "1.0")
    monkeypatch.setenv("CHIPCODE_MAX_GENERATE_TRIES", "3")
    assert main(["generate", "--now", str(NOW)]) == 2
    captured = capsys.readouterr()
    assert captured.out == "" and "sufficient randomness" in captured.err

def test_generate_out_of_range_exits_2(capsys):
    assert main(["generate", "--now", str(0x40000000*60000), "--age-ms", "0"]) == 2
    assert "encodable range" in capsys.readouterr().err
