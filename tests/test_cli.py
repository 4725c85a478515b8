import json
import sys
import unittest.mock as mock

import pytest

from mir.cli import _cli_error, _fail_with_error, main
from mir.errors import MirError


def _keygen(tmp_path):
    keyfile = tmp_path / "issuer.json"
    main(["keygen", "--out", str(keyfile)])
    return keyfile, json.loads(keyfile.read_text(encoding="utf-8"))


def _sign(tmp_path, capsys, keyfile, **extra):
    argv = [
        "sign", "--keyfile", str(keyfile),
        "--type", "mir.account.created",
        "--domain", "example.com",
        "--subject", "a" * 64,
        "--timestamp", "2026-01-01T00:00:00Z",
    ]
    for flag, value in extra.items():
        argv += [f"--{flag}", value]
    capsys.readouterr()
    main(argv)
    claim = json.loads(capsys.readouterr().out)
    path = tmp_path / "claim.json"
    path.write_text(json.dumps(claim), encoding="utf-8")
    return path, claim


def test_cli_main_help(capsys):
    with pytest.raises(SystemExit) as e:
        main(["--help"])
    assert e.value.code == 0
    assert "MIR Protocol CLI" in capsys.readouterr().out


def test_cli_main_reads_sys_argv():
    with mock.patch.object(sys, "argv", ["mir", "subject", "example.com", "user_1"]):
        with mock.patch("mir.cli.cmd_subject") as mock_subject:
            main()
    args = mock_subject.call_args[0][0]
    assert args.domain == "example.com"
    assert args.user_id == "user_1"


def test_fail_with_error(capsys):
    err = MirError(code="TEST_ERR", message="Test message", context="test context")
    with pytest.raises(SystemExit) as e:
        _fail_with_error(err)
    assert e.value.code == 1
    assert "ERROR: TEST_ERR. Test message. Context: test context." in capsys.readouterr().out


def test_cli_error(capsys):
    with pytest.raises(SystemExit) as e:
        _cli_error("What", "Why", "Fix", "See")
    assert e.value.code == 1
    assert "ERROR: What. Why. Fix: Fix. (See: See)" in capsys.readouterr().out


def test_keygen_writes_keyfile(tmp_path, capsys):
    keyfile, data = _keygen(tmp_path)
    assert set(data) >= {"pub", "priv", "fingerprint", "alg", "created"}
    assert data["fingerprint"] in capsys.readouterr().out


def test_keygen_refuses_overwrite(tmp_path):
    keyfile, _ = _keygen(tmp_path)
    with pytest.raises(SystemExit) as e:
        main(["keygen", "--out", str(keyfile)])
    assert e.value.code == 1


def test_keygen_stdout(capsys):
    main(["keygen"])
    data = json.loads(capsys.readouterr().out)
    assert len(data["fingerprint"]) == 64


def test_sign_then_verify(tmp_path, capsys):
    keyfile, keys = _keygen(tmp_path)
    claim_path, claim = _sign(tmp_path, capsys, keyfile, metadata='{"b": 2, "a": 1}')
    assert claim["keyFingerprint"] == keys["fingerprint"]
    assert claim["metadata"] == {"b": 2, "a": 1}

    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--pub", keys["pub"]])
    assert e.value.code == 0
    assert json.loads(capsys.readouterr().out) == {"valid": True}


def test_verify_with_registry(tmp_path, capsys):
    keyfile, keys = _keygen(tmp_path)
    claim_path, _ = _sign(tmp_path, capsys, keyfile)
    registry = tmp_path / "keys.json"
    public = {k: v for k, v in keys.items() if k not in ("priv", "created")}
    registry.write_text(json.dumps({"issuer": public}), encoding="utf-8")

    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--keys", str(registry)])
    assert e.value.code == 0
    capsys.readouterr()

    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--keys", str(registry), "--key", "issuer",
              "--expected-domain", "other.example.com"])
    assert e.value.code == 1
    assert json.loads(capsys.readouterr().out)["code"] == "DomainMismatch"


def test_verify_tampered_claim_exits_1(tmp_path, capsys):
    keyfile, keys = _keygen(tmp_path)
    claim_path, claim = _sign(tmp_path, capsys, keyfile)
    claim["domain"] = "example.org"
    claim_path.write_text(json.dumps(claim), encoding="utf-8")
    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--pub", keys["pub"]])
    assert e.value.code == 1
    out = json.loads(capsys.readouterr().out)
    assert out == {"valid": False, "code": "InvalidSignature", "error": "Signature verification failed"}


def test_verify_requires_key(tmp_path, capsys):
    keyfile, _ = _keygen(tmp_path)
    claim_path, _ = _sign(tmp_path, capsys, keyfile)
    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path)])
    assert e.value.code == 1
    assert "No verification key supplied" in capsys.readouterr().out


def test_verify_bad_pub(tmp_path, capsys):
    keyfile, _ = _keygen(tmp_path)
    claim_path, _ = _sign(tmp_path, capsys, keyfile)
    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--pub", "short"])
    assert e.value.code == 1
    assert "MIR_E300" in capsys.readouterr().out


def test_sign_rejects_bad_type(tmp_path, capsys):
    keyfile, _ = _keygen(tmp_path)
    with pytest.raises(SystemExit) as e:
        main(["sign", "--keyfile", str(keyfile), "--type", "nodot",
              "--domain", "example.com", "--subject", "a" * 64])
    assert e.value.code == 1
    assert "MIR_E100" in capsys.readouterr().out


def test_sign_rejects_bad_metadata(tmp_path, capsys):
    keyfile, _ = _keygen(tmp_path)
    with pytest.raises(SystemExit) as e:
        main(["sign", "--keyfile", str(keyfile), "--type", "mir.account.created",
              "--domain", "example.com", "--subject", "a" * 64, "--metadata", "{oops"])
    assert e.value.code == 1
    assert "Invalid JSON metadata" in capsys.readouterr().out


def test_canonical(tmp_path, capsys):
    claim_path = tmp_path / "claim.json"
    claim_path.write_text(json.dumps({"type": "t", "sig": "s", "mir": 1}), encoding="utf-8")
    main(["canonical", str(claim_path)])
    assert capsys.readouterr().out.strip() == '{"mir":1,"type":"t"}'


def test_missing_claim_file(tmp_path, capsys):
    with pytest.raises(SystemExit) as e:
        main(["canonical", str(tmp_path / "nope.json")])
    assert e.value.code == 1
    assert "not found" in capsys.readouterr().out


def test_claim_path_is_directory(tmp_path, capsys):
    with pytest.raises(SystemExit) as e:
        main(["canonical", str(tmp_path)])
    assert e.value.code == 1
    assert "Cannot read Claim file" in capsys.readouterr().out


def test_claim_file_not_utf8(tmp_path, capsys):
    claim_path = tmp_path / "claim.json"
    claim_path.write_bytes(b'{"type": "\xff\xfe"}')
    with pytest.raises(SystemExit) as e:
        main(["canonical", str(claim_path)])
    assert e.value.code == 1
    assert "UTF-8" in capsys.readouterr().out


def test_verify_registry_not_json(tmp_path, capsys):
    keyfile, _ = _keygen(tmp_path)
    claim_path, _ = _sign(tmp_path, capsys, keyfile)
    keys_path = tmp_path / "keys.json"
    keys_path.write_text("{broken", encoding="utf-8")
    with pytest.raises(SystemExit) as e:
        main(["verify", str(claim_path), "--keys", str(keys_path)])
    assert e.value.code == 1
    assert "Invalid JSON" in capsys.readouterr().out


def test_subject(capsys):
    main(["subject", "example.com", "user_12345"])
    assert capsys.readouterr().out.strip() == (
        "08263268befa98d6918b24f379f9464e26ef3efd97036fb188b83a1f9546319a"
    )
    main(["subject", "example.com", "user_12345", "--secret", "domain-secret"])
    assert capsys.readouterr().out.strip() == (
        "d0773cb0eaf1c075bd419cb3828837796f065e5a3c7b0df76de93a70dbb891b7"
    )
