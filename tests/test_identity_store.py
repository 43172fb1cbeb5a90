import subprocess

import pytest

from debugsign.src.core import identity_store
from debugsign.src.core.errors import InvalidIdentityError, ToolError
from debugsign.src.core.identity_store import IdentityStore, parse_identities

FIND_IDENTITY_OUTPUT = (
    b'  1) ABCDEF0123456789ABCDEF0123456789ABCDEF01 "Apple Development: Dev Cert (TEAM123456)"\n'
    b'  2) 00112233445566778899aabbccddeeff00112233 "Apple Distribution: Other (OTHER12345)"\n'
    b"     2 valid identities found\n"
)


def _fake_security(commands, returncode=0, stdout=FIND_IDENTITY_OUTPUT):
    def run(*cmd, timeout=None, verbose=False):
        commands.append(cmd)
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=b"")

    return run


def test_parse_identities_skips_summary_line() -> None:
    identities = parse_identities(FIND_IDENTITY_OUTPUT.decode())
    assert [(i.sha1, i.name) for i in identities] == [
        (
            "ABCDEF0123456789ABCDEF0123456789ABCDEF01",
            "Apple Development: Dev Cert (TEAM123456)",
        ),
        (
            "00112233445566778899AABBCCDDEEFF00112233",
            "Apple Distribution: Other (OTHER12345)",
        ),
    ]


def test_identity_matching() -> None:
    dev = parse_identities(FIND_IDENTITY_OUTPUT.decode())[0]
    assert dev.matches("Dev Cert")
    assert dev.matches("Apple Development: Dev Cert (TEAM123456)")
    assert dev.matches("abcdef0123456789abcdef0123456789abcdef01")
    assert not dev.matches("Other")
    assert not dev.matches("")


def test_store_queries_security_once(monkeypatch) -> None:
    commands = []
    monkeypatch.setattr(identity_store, "run_process", _fake_security(commands))
    store = IdentityStore(security_path="/usr/bin/security")

    assert store.require("Dev Cert").name.startswith("Apple Development")
    assert store.find("Other").sha1 == "00112233445566778899AABBCCDDEEFF00112233"
    assert commands == [
        ("/usr/bin/security", "find-identity", "-v", "-p", "codesigning")
    ]


def test_require_unknown_identity_lists_available(monkeypatch) -> None:
    monkeypatch.setattr(identity_store, "run_process", _fake_security([]))

    with pytest.raises(InvalidIdentityError) as excinfo:
        IdentityStore().require("Nobody")

    assert excinfo.value.identity == "Nobody"
    assert len(excinfo.value.identities) == 2
    assert "Dev Cert" in excinfo.value.identities[0]


def test_security_failure_raises_tool_error(monkeypatch) -> None:
    monkeypatch.setattr(
        identity_store, "run_process", _fake_security([], returncode=1, stdout=b"")
    )
    with pytest.raises(ToolError):
        IdentityStore().list_identities()
