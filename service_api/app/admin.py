"""
Issue AFKMate access tokens from the command line.

Issuance is administrative and out-of-band: no HTTP route can mint tokens.
The command signs with the same secret resolution as the API service, so a
token issued here validates against a service sharing its environment.
"""

import argparse
import json
import sys
from typing import List, Optional

from afkmate_shared.base_service import format_iso
from afkmate_shared.config import DEV_TOKEN_SECRET, BaseConfig
from afkmate_shared.errors import ConfigurationError
from afkmate_shared.logging import configure_logging
from .tokens import TokenCodec, Tier


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="afkmate-issue-token",
        description="Issue a signed AFKMate access token."
    )
    parser.add_argument("--subject", required=True, help="Subject (user) identifier; must not contain '-'")
    parser.add_argument(
        "--tier",
        default=Tier.PREMIUM.value,
        choices=[tier.value for tier in Tier],
        type=str.lower,
        help="Subscription tier granted by the token"
    )
    parser.add_argument("--json", action="store_true", help="Print token, tier and expiry as JSON")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    config = BaseConfig()
    configure_logging("admin", config.log_level, config.json_logs, stream=sys.stderr)

    secret = config.effective_token_secret()
    if secret == DEV_TOKEN_SECRET:
        print("[issue-token] warning: AFKMATE_TOKEN_SECRET not set, signing with the development secret",
              file=sys.stderr)

    codec = TokenCodec(secret)
    try:
        token = codec.generate(args.subject, args.tier)
    except ConfigurationError as exc:
        print(f"[issue-token] failed: {exc.message}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"[issue-token] failed: {exc}", file=sys.stderr)
        return 2

    if args.json:
        claims = codec.parse(token).claims
        print(json.dumps({
            "token": token,
            "subjectId": claims.subject_id,
            "tier": claims.tier.value,
            "expiresAt": format_iso(claims.expires_at),
        }, indent=2))
    else:
        print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
