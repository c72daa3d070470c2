#!/usr/bin/env python3
"""Environment checks for miionet."""

from __future__ import annotations

import argparse
import json
import os
import platform
import socket
import sys
from dataclasses import dataclass
from pathlib import Path


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _check_python_version() -> CheckResult:
    major, minor = sys.version_info[:2]
    ok = (major, minor) >= (3, 11)
    detail = f"{platform.python_version()} (requires >= 3.11)"
    return CheckResult("python_version", ok, detail)


def _check_imports() -> list[CheckResult]:
    results = []
    for module in ["cryptography", "psutil", "zeroconf", "click", "rich"]:
        try:
            __import__(module)
            results.append(CheckResult(f"import:{module}", True, "ok"))
        except Exception as exc:  # pragma: no cover - diagnostic
            results.append(CheckResult(f"import:{module}", False, str(exc)))
    return results


def _check_udp_broadcast() -> CheckResult:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind(("0.0.0.0", 0))
        return CheckResult("udp_broadcast", True, f"bound {sock.getsockname()[1]}")
    except OSError as exc:
        return CheckResult("udp_broadcast", False, str(exc))
    finally:
        sock.close()


def _check_config(path: Path) -> CheckResult:
    if not path.exists():
        return CheckResult("config", True, f"{path} not found, using defaults")
    try:
        with open(path) as f:
            json.load(f)
    except (OSError, ValueError) as exc:
        return CheckResult("config", False, f"{path}: {exc}")
    return CheckResult("config", True, str(path))


def _check_token_file(path: Path) -> CheckResult:
    if not path.exists():
        return CheckResult("tokens", True, f"{path} not created yet")
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        return CheckResult("tokens", False, f"{path}: {exc}")
    if not isinstance(data, dict):
        return CheckResult("tokens", False, f"{path} is not a JSON object")
    return CheckResult("tokens", True, f"{len(data)} token(s) in {path}")


def _print_results(results: list[CheckResult]) -> int:
    failures = [r for r in results if not r.ok]
    for r in results:
        status = "OK" if r.ok else "FAIL"
        print(f"{status:4} {r.name:20} {r.detail}")
    return 1 if failures else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Environment checks for miionet.")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("MIIONET_CONFIG", ".miionet.json")),
        help="Configuration file to check",
    )
    parser.add_argument(
        "--tokens",
        type=Path,
        default=Path("~/.miionet/tokens.json").expanduser(),
        help="Token file to check",
    )
    args = parser.parse_args()

    results = [_check_python_version()]
    results.extend(_check_imports())
    results.append(_check_udp_broadcast())
    results.append(_check_config(args.config))
    results.append(_check_token_file(args.tokens))

    return _print_results(results)


if __name__ == "__main__":
    raise SystemExit(main())
