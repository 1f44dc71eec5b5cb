#!/usr/bin/env python3
"""
privsalary Command Line Interface

Usage:
    privsalary demo
    privsalary keygen --output <file>
    privsalary verify-log --file <export.json>
    privsalary verify-log --db <sqlite file>
    privsalary hash --handle <hex> --handle <hex> ...
"""

import argparse
import json
import sys
from typing import List, Optional


def load_json(path: str):
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def cmd_demo(args) -> int:
    """Walk one batch through its full lifecycle."""
    from privsalary import (
        HandleScheme,
        LocalDecryptionOracle,
        ProtocolError,
        SalaryAggregator,
    )
    from privsalary.util import ManualClock, utc_rfc3339

    owner, alice, bob = "0xowner", "0xalice", "0xbob"
    clock = ManualClock()
    scheme = HandleScheme()
    oracle = LocalDecryptionOracle(scheme)
    scheme.trust_oracle_key(oracle.kid, oracle.verify_key_b64)
    agg = SalaryAggregator(owner=owner, capability=scheme, oracle=oracle,
                           cooldown_seconds=args.cooldown, clock=clock)

    print("=" * 60)
    print("privsalary batch demonstration")
    print("=" * 60)

    agg.add_provider(owner, alice)
    agg.add_provider(owner, bob)
    batch_id = agg.open_batch(owner)
    print(f"\nOpened batch {batch_id}; providers: {agg.providers}")

    agg.submit_salary_data(alice, scheme.encrypt(80000), scheme.encrypt(2), scheme.encrypt(5))
    print(f"{alice} submitted")
    try:
        agg.submit_salary_data(alice, scheme.encrypt(1), scheme.encrypt(1), scheme.encrypt(1))
    except ProtocolError as e:
        print(f"{alice} resubmitted too soon: {e.code.value}")

    clock.advance(args.cooldown)
    agg.submit_salary_data(bob, scheme.encrypt(90000), scheme.encrypt(3), scheme.encrypt(7))
    print(f"{bob} submitted")

    agg.close_batch(owner)
    request_id = agg.request_average_decryption(bob)
    print(f"\nClosed batch {batch_id}; decryption request {request_id} pending")
    print(f"Ledger (opaque): {agg.ledger_snapshot().salary[:16]}...")

    oracle.fulfil(request_id)
    event = agg.published_result(batch_id)
    print(f"\nPublished at {utc_rfc3339(event.timestamp)}:")
    print(json.dumps(event.payload, indent=2))
    return 0


def cmd_keygen(args) -> int:
    """Generate an oracle signing key file."""
    from privsalary.oracle import write_oracle_key

    verify_key = write_oracle_key(args.output, kid=args.key_id)
    print(f"Oracle key written to: {args.output}", file=sys.stderr)
    print(json.dumps({"kid": args.key_id, "verify_key_b64": verify_key}, indent=2))
    return 0


def cmd_verify_log(args) -> int:
    """Verify the hash chain of an exported or stored event log."""
    from privsalary.events import SqliteEventLog, verify_chain

    if args.db:
        log = SqliteEventLog(args.db)
        entries = log.export()
        log.close()
    else:
        entries = load_json(args.file)

    bad_seq = verify_chain(entries)
    if bad_seq is not None:
        print(f"FAIL: chain mismatch at seq {bad_seq}")
        return 1
    print(f"PASS: event log chain valid ({len(entries)} entries)")
    return 0


def cmd_hash(args) -> int:
    """Compute the binding hash for an ordered list of ciphertext handles."""
    from privsalary.config import get_settings
    from privsalary.encryption import Ciphertext
    from privsalary.hashing import binding_hash

    process_id = args.process_id or get_settings().process_id
    handles = [Ciphertext.from_hex(h).handle for h in args.handle]
    print(f"binding_hash: {binding_hash(handles, process_id)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="privsalary",
        description="privsalary CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  privsalary demo
  privsalary keygen -o secrets/oracle_signing_key.json
  privsalary verify-log --db data/privsalary.db
  privsalary hash --handle <hex> --handle <hex> --handle <hex>
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    demo_parser = subparsers.add_parser("demo", help="Run demonstration")
    demo_parser.add_argument("--cooldown", type=int, default=60, help="Cooldown seconds")

    keygen_parser = subparsers.add_parser("keygen", help="Generate oracle signing key")
    keygen_parser.add_argument("-o", "--output", required=True, help="Key file to write")
    keygen_parser.add_argument("-k", "--key-id", default="oracle-01", help="Key identifier")

    verify_parser = subparsers.add_parser("verify-log", help="Verify event log chain")
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-f", "--file", help="Exported event log JSON")
    source.add_argument("--db", help="SQLite event log")

    hash_parser = subparsers.add_parser("hash", help="Compute binding hash")
    hash_parser.add_argument("--handle", action="append", required=True, help="Ciphertext handle (hex)")
    hash_parser.add_argument("--process-id", help="Process identity (default from settings)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "demo": cmd_demo,
        "keygen": cmd_keygen,
        "verify-log": cmd_verify_log,
        "hash": cmd_hash,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 2
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
