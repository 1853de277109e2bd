#!/usr/bin/env python3
"""
actorledger.cli.derive — compute (or check) an account address offline.

Reads a code blob (the canonical CBOR manifest a contract class produces with
`Contract.code()`) and the immutable data as JSON, then prints

    address = sha3_256(cbor({"code": sha3_256(code), "data": data}))

Usage:
    python -m actorledger.cli.derive --code wallet.cbor --data '{"owner": "0x…"}'
    python -m actorledger.cli.derive --code wallet.cbor --data data.json --check 0xabc…

JSON strings that start with "0x" are decoded to bytes (keys, addresses)
unless --no-hex is given.

Exit status: 0 ok / address matches, 1 mismatch, 2 bad input.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from ..address import Address, derive
from ..errors import EncodingError


def eprint(*args: object) -> None:
    print(*args, file=sys.stderr)


def _hex_to_bytes(v: Any) -> Any:
    if isinstance(v, str) and v.startswith(("0x", "0X")):
        try:
            return bytes.fromhex(v[2:])
        except ValueError:
            return v
    if isinstance(v, list):
        return [_hex_to_bytes(x) for x in v]
    if isinstance(v, dict):
        return {k: _hex_to_bytes(x) for k, x in v.items()}
    return v


def _load_data(arg: str, *, hex_bytes: bool) -> dict:
    p = Path(arg)
    text = p.read_text(encoding="utf-8") if p.is_file() else arg
    data = json.loads(text) if text.strip() else {}
    if not isinstance(data, dict):
        raise ValueError("immutable data must be a JSON object")
    return _hex_to_bytes(data) if hex_bytes else data


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="actorledger-derive",
        description="Derive an account address from code + immutable data.",
    )
    p.add_argument("--code", required=True, type=Path, help="Path to the code blob (CBOR manifest)")
    p.add_argument("--data", default="{}", help="Immutable data: JSON text or path to a JSON file")
    p.add_argument("--check", metavar="ADDRESS", help="Verify that ADDRESS is the derived address")
    p.add_argument("--no-hex", action="store_true", help="Keep 0x-strings as text")
    p.add_argument("--json", action="store_true", help="Print a JSON object instead of the bare address")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        code = args.code.read_bytes()
        data = _load_data(args.data, hex_bytes=not args.no_hex)
        addr = derive(code, data)
    except (OSError, ValueError, EncodingError) as e:
        eprint(f"[derive] {e}")
        return 2

    ok = True
    if args.check:
        try:
            ok = bytes(Address(args.check)) == bytes(addr)
        except ValueError as e:
            eprint(f"[derive] {e}")
            return 2

    if args.json:
        out: dict = {"address": str(addr)}
        if args.check:
            out["matches"] = ok
        print(json.dumps(out))
    else:
        print(str(addr))
        if args.check and not ok:
            eprint(f"[derive] mismatch: expected {args.check}")
    return 0 if ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
