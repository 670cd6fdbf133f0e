#!/usr/bin/env python3
"""Generate an ed25519 keypair for a pool account.

The public key goes into the genesis config under accounts.<id>.pubkey; the
seed stays with the client and signs tx envelopes (see stakepool.crypto.sig).
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from stakepool.crypto.sig import generate_keypair


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--account", required=True, help="Account id the key is registered for")
    ap.add_argument("--out", default="", help="Write the keypair JSON here instead of stdout")
    args = ap.parse_args()

    seed, pub = generate_keypair()
    rec = {"account": args.account, "pubkey": pub, "seed": seed}
    text = json.dumps(rec, indent=2, sort_keys=True) + "\n"

    if args.out:
        p = Path(args.out).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        p.chmod(0o600)
        print(f"ok: wrote {p} (pubkey={pub})")
    else:
        print(text, end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
