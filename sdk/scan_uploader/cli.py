"""CLI: scan-uploader FILE [FILE ...] | scan-uploader --health."""
import argparse
import json
import sys
from pathlib import Path

from .client import ScanClient, ScanError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="scan-uploader", description="Scan files with VirusTotal through the scan relay")
    parser.add_argument("--base-url", default="http://localhost:3000", help="Relay base URL")
    parser.add_argument("--health", action="store_true", help="Only check relay health")
    parser.add_argument("files", nargs="*", help="Local files to scan")
    args = parser.parse_args(argv)

    if not args.health and not args.files:
        parser.error("at least one file is required unless --health is given")

    with ScanClient(base_url=args.base_url) as client:
        try:
            if args.health:
                print(json.dumps(client.health(), indent=2))
                return 0
            return cmd_scan(client, [Path(f) for f in args.files])
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1


def cmd_scan(client: ScanClient, paths: list[Path]) -> int:
    missing = [p for p in paths if not p.is_file()]
    if missing:
        print(f"Missing files: {missing}", file=sys.stderr)
        return 1
    failures = 0
    for p in paths:
        try:
            result = client.scan_file(p)
        except ScanError as e:
            failures += 1
            print(f"{p.name}: {e}", file=sys.stderr)
            if e.body is not None:
                print(json.dumps(e.body, indent=2), file=sys.stderr)
            continue
        print(json.dumps(result, indent=2))
        print(f"  {p.name} submitted", file=sys.stderr)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
