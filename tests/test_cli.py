import hashlib
import json

from docauth.assertion import parse_assertion
from docauth.cli import main


def test_keygen_then_sign(tmp_path, capsys):
    key_file = tmp_path / "me.json"
    assert main(["keygen", "-o", str(key_file)]) == 0
    ident = json.loads(key_file.read_text())
    assert ident["did"].startswith("did:key:z")

    capsys.readouterr()
    assert main(["sign", "-k", str(key_file), "-c", "ab" * 32]) == 0
    token = capsys.readouterr().out.strip()
    parsed = parse_assertion(token)
    assert parsed.identity == ident["did"]
    assert parsed.challenge == "ab" * 32


def test_sign_with_broken_key(tmp_path):
    key_file = tmp_path / "bad.json"
    key_file.write_text(json.dumps({"did": "did:example:abc", "privateKeyJwk": {"kty": "OKP"}}))
    assert main(["sign", "-k", str(key_file), "-c", "ab" * 32]) == 1


def test_hash(tmp_path, capsys):
    doc = tmp_path / "doc.txt"
    doc.write_bytes(b"hello-doc")
    assert main(["hash", "-f", str(doc)]) == 0
    assert capsys.readouterr().out.strip() == "sha256: " + hashlib.sha256(b"hello-doc").hexdigest()


def test_hash_empty_file(tmp_path):
    doc = tmp_path / "empty"
    doc.write_bytes(b"")
    assert main(["hash", "-f", str(doc)]) == 1


def test_demo(capsys):
    assert main(["demo"]) == 0
    out = capsys.readouterr().out
    assert "Latest version: 2" in out


def test_no_command():
    assert main([]) == 2
