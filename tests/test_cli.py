"""Tests for Minefair CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest

from minefair.cli import build_parser, main
from minefair.crypto.commitment import CommitmentManager


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
SEED_HEX = "0x" + "ab" * 32


def _run(capsys, *argv: str) -> tuple[int, str, str]:
    code = main(["--config", str(CONFIG_DIR), *argv])
    captured = capsys.readouterr()
    return code, captured.out, captured.err


class TestCLIParsing:
    def test_risk_check_command(self) -> None:
        args = build_parser().parse_args([
            "risk-check", "--bankroll", "100", "--bet", "5", "--payout", "20",
        ])
        assert args.command == "risk-check"
        assert args.bankroll == 100

    def test_play_positions_parsed(self) -> None:
        args = build_parser().parse_args([
            "play", "--player", "alice", "--bet", "10",
            "--bankroll", "1000", "--positions", "0, 4,7",
        ])
        assert args.positions == [0, 4, 7]

    def test_bad_positions_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([
                "play", "--player", "alice", "--bet", "10",
                "--bankroll", "1000", "--positions", "a,b",
            ])

    def test_difficulty_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["multiplier-table", "--difficulty", "easy"])


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0

    def test_new_commitment_with_seed(self, capsys) -> None:
        code, out, _ = _run(capsys, "new-commitment", "--seed", SEED_HEX)
        assert code == 0
        data = json.loads(out)
        assert data["player_seed"] == SEED_HEX
        expected = CommitmentManager.hash_seed(bytes.fromhex("ab" * 32))
        assert data["commitment_hash"] == "0x" + expected.hex()

    def test_verify_commitment(self, capsys) -> None:
        commitment_hash = "0x" + CommitmentManager.hash_seed(bytes.fromhex("ab" * 32)).hex()
        code, _, _ = _run(capsys, "verify-commitment", "--hash", commitment_hash, "--seed", SEED_HEX)
        assert code == 0
        code, _, err = _run(
            capsys, "verify-commitment", "--hash", commitment_hash, "--seed", "0x" + "ac" * 32,
        )
        assert code == 1
        assert "INVALID" in err

    def test_combine_and_derive(self, capsys) -> None:
        code, out, _ = _run(
            capsys, "combine-seeds", "--player", SEED_HEX, "--counterparty", "0x" + "cd" * 32,
        )
        assert code == 0
        combined = json.loads(out)["combined_seed"]
        code, out, _ = _run(capsys, "derive-bombs", "--seed", combined, "--board")
        assert code == 0
        first_line = out.splitlines()[0]
        assert len(json.loads(first_line)["bombs"]) == 9
        assert len(out.splitlines()) == 7

    def test_multiplier_table(self, capsys) -> None:
        code, out, _ = _run(capsys, "multiplier-table", "--limit", "2")
        assert code == 0
        assert "1.2666" in out
        assert len(out.splitlines()) == 4

    def test_risk_check(self, capsys) -> None:
        code, out, _ = _run(capsys, "risk-check", "--bankroll", "100", "--bet", "5", "--payout", "20")
        assert code == 0
        data = json.loads(out)
        assert data["force_cashout"] is True
        assert data["max_allowed_payout"] == 19

    def test_bad_hex_reports_error(self, capsys) -> None:
        code, _, err = _run(capsys, "derive-bombs", "--seed", "0x1234")
        assert code == 1
        assert "Error" in err

    def test_missing_config_reports_error(self, capsys, tmp_path: Path) -> None:
        code = main(["--config", str(tmp_path), "multiplier-table"])
        assert code == 1


class TestPlayAndVerify:
    def test_play_writes_audit_log(self, capsys, tmp_path: Path) -> None:
        code = main([
            "--config", str(CONFIG_DIR), "--data", str(tmp_path),
            "play", "--player", "alice", "--bet", "1000",
            "--bankroll", "1000000000", "--positions", "0,1,2",
        ])
        out = capsys.readouterr().out
        assert code == 0
        assert "Verified" in out
        assert (tmp_path / "events.jsonl").exists()

    def test_verify_game_from_settlement_event(self, capsys, tmp_path: Path) -> None:
        main([
            "--config", str(CONFIG_DIR), "--data", str(tmp_path),
            "play", "--player", "alice", "--bet", "1000",
            "--bankroll", "1000000000", "--positions", "5",
        ])
        lines = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
        settlement = json.loads(lines[-1])
        record_path = tmp_path / "game.json"
        record_path.write_text(json.dumps(settlement["payload"]), encoding="utf-8")
        code, out, _ = _run(capsys, "verify-game", str(record_path))
        assert code == 0
        assert "Game verified" in out

    def test_verify_game_detects_tampering(self, capsys, tmp_path: Path) -> None:
        main([
            "--config", str(CONFIG_DIR), "--data", str(tmp_path),
            "play", "--player", "alice", "--bet", "1000",
            "--bankroll", "1000000000", "--positions", "5",
        ])
        lines = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[-1])["payload"]["record"]
        record["payout"] += 1
        record_path = tmp_path / "game.json"
        record_path.write_text(json.dumps(record), encoding="utf-8")
        code, _, err = _run(capsys, "verify-game", str(record_path))
        assert code == 1
        assert "payout mismatch" in err
