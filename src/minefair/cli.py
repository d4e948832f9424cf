"""Minefair CLI — command-line interface for the outcome engine.

Usage:
    python -m minefair.cli new-commitment
    python -m minefair.cli verify-commitment --hash 0x... --seed 0x...
    python -m minefair.cli combine-seeds --player 0x... --counterparty 0x...
    python -m minefair.cli derive-bombs --seed 0x... --difficulty god_of_war
    python -m minefair.cli multiplier-table --difficulty normal
    python -m minefair.cli risk-check --bankroll 100 --bet 5 --payout 20
    python -m minefair.cli verify-game game.json
    python -m minefair.cli play --player alice --bet 1000 --bankroll 1000000 --positions 0,1,2

``MINEFAIR_CONFIG_DIR`` and ``MINEFAIR_DATA_DIR`` are read from the
environment (or a ``.env`` file at the project root) when ``--config`` /
``--data`` are not given.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from minefair.crypto.commitment import CommitmentManager
from minefair.crypto.keccak import seed_from_hex, to_hex
from minefair.crypto.seed_combiner import LAYOUTS, SeedCombiner
from minefair.engine.multiplier import MultiplierEngine
from minefair.engine.risk_guard import should_force_cashout
from minefair.engine.tile_deriver import bomb_mask, derive_bombs
from minefair.engine.verifier import GameRecord, verify_game
from minefair.errors import GameError
from minefair.models.commitment import SeedEntropy
from minefair.models.session import Difficulty
from minefair.persistence.event_log import EventLog
from minefair.policy.resolver import PolicyResolver
from minefair.service import MinefairService


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = ROOT / "config"
DEFAULT_DATA = ROOT / "data"


def _resolver(args: argparse.Namespace) -> PolicyResolver:
    return PolicyResolver.from_config_dir(args.config)


def _entropy(args: argparse.Namespace) -> SeedEntropy:
    block_hash = (
        seed_from_hex(args.block_hash, "block_hash") if args.block_hash else b"\x00" * 32
    )
    return SeedEntropy(
        nonce=args.nonce,
        block_number=args.block_number,
        future_block_hash=block_hash,
    )


def cmd_new_commitment(args: argparse.Namespace) -> int:
    seed = seed_from_hex(args.seed, "seed") if args.seed else None
    commitment = CommitmentManager().create_commitment(seed)
    print(json.dumps({
        "player_seed": to_hex(commitment.player_seed),
        "commitment_hash": commitment.commitment_hex,
    }, indent=2))
    return 0


def cmd_verify_commitment(args: argparse.Namespace) -> int:
    commitment_hash = seed_from_hex(args.hash, "hash")
    seed = seed_from_hex(args.seed, "seed")
    if CommitmentManager().verify_reveal(commitment_hash, seed):
        print("Commitment valid")
        return 0
    print("Commitment INVALID: seed does not hash to the commitment", file=sys.stderr)
    return 1


def cmd_combine_seeds(args: argparse.Namespace) -> int:
    policy = _resolver(args).policy()
    combined = SeedCombiner(args.layout or policy.seed_layout).combine(
        seed_from_hex(args.player, "player"),
        seed_from_hex(args.counterparty, "counterparty"),
        difficulty=Difficulty(args.difficulty),
        entropy=_entropy(args),
    )
    print(json.dumps({
        "combined_seed": combined.hex,
        "layout_version": combined.layout_version,
    }, indent=2))
    return 0


def cmd_derive_bombs(args: argparse.Namespace) -> int:
    policy = _resolver(args).policy()
    bomb_count = args.bombs if args.bombs is not None else policy.bomb_count(
        Difficulty(args.difficulty)
    )
    bombs = derive_bombs(
        seed_from_hex(args.seed, "seed"),
        bomb_count,
        policy.grid_size,
        max_attempts=policy.max_derivation_attempts,
    )
    print(json.dumps({"bomb_count": bomb_count, "bombs": sorted(bombs)}))
    if args.board:
        width = int(policy.grid_size ** 0.5) or 1
        mask = bomb_mask(bombs, policy.grid_size)
        for start in range(0, policy.grid_size, width):
            print(" ".join("X" if b else "." for b in mask[start:start + width]))
    return 0


def cmd_multiplier_table(args: argparse.Namespace) -> int:
    policy = _resolver(args).policy()
    bomb_count = policy.bomb_count(Difficulty(args.difficulty))
    engine = MultiplierEngine(policy)
    print(f"{'reveals':>7}  {'multiplier':>18}  capped")
    for quote in engine.table(bomb_count, limit=args.limit):
        flag = "yes" if quote.capped else ""
        print(f"{quote.safe_reveals:>7}  {quote.as_decimal():>18}  {flag}")
    return 0


def cmd_risk_check(args: argparse.Namespace) -> int:
    policy = _resolver(args).policy()
    decision = should_force_cashout(
        args.bankroll, args.bet, args.payout, policy.bankroll_cap_ratio,
    )
    print(json.dumps({
        "force_cashout": decision.force_cashout,
        "reason": decision.reason.value,
        "max_allowed_payout": decision.max_allowed_payout,
        "message": decision.message,
    }, indent=2))
    return 0


def cmd_verify_game(args: argparse.Namespace) -> int:
    policy = _resolver(args).policy()
    with Path(args.file).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    # Accept either a bare record or a settlement event payload.
    record = GameRecord.from_dict(data.get("record", data))
    report = verify_game(record, policy)
    if report.valid:
        print(f"Game verified: {len(report.bombs)} bombs, payout {record.payout}")
        return 0
    print("Game verification FAILED:", file=sys.stderr)
    for error in report.errors:
        print(f"  - {error}", file=sys.stderr)
    return 1


def cmd_play(args: argparse.Namespace) -> int:
    args.data.mkdir(parents=True, exist_ok=True)
    service = MinefairService(
        _resolver(args),
        event_log=EventLog(storage_path=args.data / "events.jsonl"),
    )
    commitment = CommitmentManager().create_commitment()
    counterparty = (
        seed_from_hex(args.counterparty, "counterparty")
        if args.counterparty else CommitmentManager.generate_seed()
    )

    result = service.start_game(args.player, args.bet, args.difficulty)
    if not result.success:
        print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
        return 1
    session_id = result.data["session_id"]
    print(f"Started {session_id}, commitment {commitment.commitment_hex}")

    steps = [
        lambda: service.post_commitment(session_id, commitment.commitment_hash),
        lambda: service.supply_seeds(session_id, commitment.player_seed, counterparty),
    ]
    for step in steps:
        result = step()
        if not result.success:
            print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
            return 1

    for position in args.positions:
        result = service.reveal_tile(session_id, position, args.bankroll)
        if not result.success:
            print(f"Reveal {position} rejected: {'; '.join(result.errors)}", file=sys.stderr)
            continue
        print(f"Tile {position}: {result.data['result']} "
              f"(multiplier {result.data.get('multiplier', '-')})")
        if result.data["result"] != "safe":
            break

    info = service.get_game_info(session_id).data
    if info["active"]:
        result = service.cash_out(session_id, bankroll=args.bankroll)
        if not result.success:
            print(f"Cash-out failed: {'; '.join(result.errors)}", file=sys.stderr)
            service.forfeit(session_id)
        info = service.get_game_info(session_id).data

    print(f"Ended {info['status']} with payout {info['payout']}")
    verification = service.verify_session(session_id)
    if verification.success:
        print(f"Verified: bombs at {verification.data['bombs']}")
        return 0
    print(f"Verification FAILED: {'; '.join(verification.errors)}", file=sys.stderr)
    return 1


def _positions(text: str) -> list[int]:
    try:
        return [int(part) for part in text.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"positions must be comma-separated integers: {text}"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minefair",
        description="Minefair — provably-fair mines outcome engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config directory (default: $MINEFAIR_CONFIG_DIR or config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="Path to data directory (default: $MINEFAIR_DATA_DIR or data/)",
    )
    sub = parser.add_subparsers(dest="command")
    difficulties = [d.value for d in Difficulty]

    # new-commitment
    p_new = sub.add_parser("new-commitment", help="Generate a player seed and its commitment")
    p_new.add_argument("--seed", help="Use this 32-byte hex seed instead of a random one")

    # verify-commitment
    p_vc = sub.add_parser("verify-commitment", help="Check a revealed seed against a commitment")
    p_vc.add_argument("--hash", required=True, help="Commitment hash (hex)")
    p_vc.add_argument("--seed", required=True, help="Revealed player seed (hex)")

    # combine-seeds
    p_comb = sub.add_parser("combine-seeds", help="Compute the combined seed")
    p_comb.add_argument("--player", required=True, help="Player seed (hex)")
    p_comb.add_argument("--counterparty", required=True, help="Counterparty seed (hex)")
    p_comb.add_argument("--difficulty", default="normal", choices=difficulties)
    p_comb.add_argument("--layout", choices=sorted(LAYOUTS), help="Seed layout (default: policy)")
    p_comb.add_argument("--nonce", type=int, default=0)
    p_comb.add_argument("--block-number", type=int, default=0)
    p_comb.add_argument("--block-hash", help="Future block hash (hex, default: zero)")

    # derive-bombs
    p_der = sub.add_parser("derive-bombs", help="Derive the bomb set from a combined seed")
    p_der.add_argument("--seed", required=True, help="Combined seed (hex)")
    p_der.add_argument("--difficulty", default="normal", choices=difficulties)
    p_der.add_argument("--bombs", type=int, help="Override the policy bomb count")
    p_der.add_argument("--board", action="store_true", help="Also draw the board")

    # multiplier-table
    p_mult = sub.add_parser("multiplier-table", help="Print the multiplier ladder")
    p_mult.add_argument("--difficulty", default="normal", choices=difficulties)
    p_mult.add_argument("--limit", type=int, help="Stop after this many reveals")

    # risk-check
    p_risk = sub.add_parser("risk-check", help="Evaluate the bankroll risk guard")
    p_risk.add_argument("--bankroll", type=int, required=True)
    p_risk.add_argument("--bet", type=int, required=True)
    p_risk.add_argument("--payout", type=int, required=True, help="Hypothetical payout")

    # verify-game
    p_ver = sub.add_parser("verify-game", help="Replay a finished game from its JSON record")
    p_ver.add_argument("file", help="Game record JSON file")

    # play
    p_play = sub.add_parser("play", help="Run a scripted game end to end")
    p_play.add_argument("--player", required=True, help="Player ID")
    p_play.add_argument("--bet", type=int, required=True, help="Bet in smallest currency unit")
    p_play.add_argument("--bankroll", type=int, required=True, help="Available bankroll")
    p_play.add_argument("--difficulty", default="normal", choices=difficulties)
    p_play.add_argument("--positions", type=_positions, required=True,
                        help="Comma-separated tile positions to reveal in order")
    p_play.add_argument("--counterparty", help="Counterparty seed (hex, default: random)")

    return parser


def _env_path(explicit: Optional[Path], var: str, fallback: Path) -> Path:
    if explicit is not None:
        return explicit
    value = os.getenv(var)
    return Path(value) if value else fallback


def main(argv: list[str] | None = None) -> int:
    load_dotenv(ROOT / ".env")
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    args.config = _env_path(args.config, "MINEFAIR_CONFIG_DIR", DEFAULT_CONFIG)
    args.data = _env_path(args.data, "MINEFAIR_DATA_DIR", DEFAULT_DATA)

    commands = {
        "new-commitment": cmd_new_commitment,
        "verify-commitment": cmd_verify_commitment,
        "combine-seeds": cmd_combine_seeds,
        "derive-bombs": cmd_derive_bombs,
        "multiplier-table": cmd_multiplier_table,
        "risk-check": cmd_risk_check,
        "verify-game": cmd_verify_game,
        "play": cmd_play,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (GameError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
