"""CLI utilities for developer workflows."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Sequence

import httpx
from pydantic import BaseModel

from homekeeper_client.client import HomeKeeperClient
from homekeeper_client.config import EMAIL_ENV_VAR, PASSWORD_ENV_VAR
from homekeeper_client.exceptions import ApiError, HomeKeeperError
from homekeeper_client.request_options import RequestOptions


HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="homekeeper")
    parser.add_argument("--base-url", default=None, help="API base URL (default: $API_BASE_URL)")
    parser.add_argument("--email", default=os.getenv(EMAIL_ENV_VAR))
    parser.add_argument("--password", default=os.getenv(PASSWORD_ENV_VAR))
    parser.add_argument(
        "--allow-http",
        action="store_true",
        help="Allow a plain-HTTP base URL on a non-loopback host",
    )
    parser.add_argument("--verbose", action="store_true")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("whoami", help="Show the logged-in user")
    commands.add_parser("households", help="List households of the logged-in user")

    request = commands.add_parser("request", help="Send a raw API request")
    request.add_argument("method", type=str.upper, choices=HTTP_METHODS)
    request.add_argument("path")
    request.add_argument("--data", default=None, help="JSON request body")
    return parser


def _build_client(args: argparse.Namespace) -> HomeKeeperClient:
    return HomeKeeperClient(base_url=args.base_url, allow_http=args.allow_http)


def _run(client: HomeKeeperClient, args: argparse.Namespace) -> Any:
    if args.email and args.password:
        client.login(args.email, args.password)

    if args.command == "whoami":
        return client.whoami()
    if args.command == "households":
        return client.list_households()

    body = None
    if args.data is not None:
        body = json.dumps(json.loads(args.data))
    return client.request(args.path, RequestOptions(method=args.method, body=body))


def _main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        with _build_client(args) as client:
            result = _run(client, args)
    except ApiError as exc:
        print(f"API error {exc.status_code}: {exc.message}", file=sys.stderr)
        return 1
    except HomeKeeperError as exc:
        print(f"Invalid arguments: {exc.message}", file=sys.stderr)
        return 2
    except json.JSONDecodeError as exc:
        print(f"Invalid --data JSON: {exc}", file=sys.stderr)
        return 2
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    except httpx.TransportError as exc:
        print(f"Network error: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(_to_jsonable(result), indent=2))
    return 0


def main() -> None:
    raise SystemExit(_main())
