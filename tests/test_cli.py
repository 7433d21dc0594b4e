"""End-to-end run of the command-line front end against a state file.

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest

from conftest import seed_for
from ledger_raffle import cli
from ledger_raffle.identity import Identity


def run(monkeypatch, *argv):
    monkeypatch.setattr("sys.argv", ["ledger-raffle", *argv])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return excinfo.value.code


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("RAFFLE_STATE_FILE", "RAFFLE_CONTRACT_ADDRESS", "RAFFLE_DENOM", "RPC_URL", "HELIUS_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def write_key(path, key):
    path.write_text(bytes(key).hex(), encoding="utf-8")
    return str(path)


class TestCli:
    def test_full_raffle(self, workdir, monkeypatch, capsys, admin, alice, bob, alice_key):
        state = ["--state-file", str(workdir / "state.json")]
        t0 = "1700000000"

        assert run(monkeypatch, *state, "init", "--sender", admin.address) == 0
        assert run(monkeypatch, *state, "mint", "--to", alice.address, "--amount", "1000") == 0
        assert run(monkeypatch, *state, "mint", "--to", bob.address, "--amount", "1000") == 0
        assert run(
            monkeypatch, *state, "set-raffle", "--sender", admin.address, "--secret", "swordfish",
            "--price", "100", "--end-time", "1700000060", "--now", t0,
        ) == 0
        assert run(monkeypatch, *state, "start", "--sender", admin.address, "--now", t0) == 0
        assert run(monkeypatch, *state, "buy", "--sender", alice.address, "--amount", "300", "--now", t0) == 0
        assert run(monkeypatch, *state, "buy", "--sender", bob.address, "--amount", "100", "--now", t0) == 0

        audit_path = str(workdir / "audit.json")
        assert run(
            monkeypatch, *state, "select-winner", "--sender", bob.address,
            "--seed-hex", seed_for(2).hex(), "--now", "1700000060", "--out", audit_path,
        ) == 0
        assert run(monkeypatch, "verify", "--audit", audit_path) == 0

        assert run(monkeypatch, *state, "claim", "--sender", alice.address, "--now", "1700000061") == 0

        key_file = write_key(workdir / "alice.key", alice_key)
        permit_path = str(workdir / "permit.json")
        assert run(monkeypatch, *state, "sign-permit", "--key-file", key_file, "--name", "p", "--out", permit_path) == 0
        capsys.readouterr()
        assert run(monkeypatch, *state, "secret", "--permit", permit_path) == 0
        assert capsys.readouterr().out.strip() == "swordfish"

        assert run(monkeypatch, *state, "info") == 0
        info = json.loads(capsys.readouterr().out)["raffle_info"]
        assert info["winner"] == alice.address
        assert info["prize_claimed"] is True

        assert run(monkeypatch, *state, "balance", "--address", alice.address) == 0
        assert capsys.readouterr().out.strip().endswith(": 1100 lamports")

    def test_domain_error_exits_nonzero(self, workdir, monkeypatch, capsys, admin, alice):
        state = ["--state-file", str(workdir / "state.json")]
        assert run(monkeypatch, *state, "init", "--sender", admin.address) == 0
        assert run(monkeypatch, *state, "start", "--sender", alice.address, "--now", "1") == 1
        assert "UNAUTHORIZED" in capsys.readouterr().err

    @pytest.mark.parametrize("source", [["--seed-hex", "not-hex"], ["--slot", "42"]])
    def test_bad_randomness_input_exits_nonzero(self, workdir, monkeypatch, capsys, admin, source):
        """A malformed seed or a missing RPC URL is reported as an error line, not a traceback."""
        state = ["--state-file", str(workdir / "state.json")]
        assert run(monkeypatch, *state, "init", "--sender", admin.address) == 0
        capsys.readouterr()
        code = run(monkeypatch, *state, "select-winner", "--sender", admin.address, *source, "--now", "1")
        assert code == 1
        assert "error: " in capsys.readouterr().err

    def test_keygen(self, workdir, monkeypatch, capsys):
        assert run(monkeypatch, "keygen", "--out", str(workdir / "k.hex")) == 0
        address = capsys.readouterr().out.splitlines()[0].split(":", 1)[1].strip()
        assert Identity.from_string(address)
