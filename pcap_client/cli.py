import argparse
import json
import os
import sys
import time
from pathlib import Path
from typing import Any

from .client import (
    DEFAULT_SERVER_URL,
    download_raw,
    get_pdml,
    get_status,
    kill_job,
    list_jobs,
    submit_fixed,
)

TERMINAL_STATES = {"SUCCEEDED", "FAILED", "KILLED"}

# CLI option -> wire key of the fixed query
QUERY_OPTIONS = {
    "base_path": "basePath",
    "base_interim_result_path": "baseInterimResultPath",
    "final_output_path": "finalOutputPath",
    "start_time_ms": "startTimeMs",
    "end_time_ms": "endTimeMs",
    "num_reducers": "numReducers",
    "ip_src_addr": "ipSrcAddr",
    "ip_dst_addr": "ipDstAddr",
    "ip_src_port": "ipSrcPort",
    "ip_dst_port": "ipDstPort",
    "protocol": "protocol",
    "include_reverse": "includeReverse",
    "packet_filter": "packetFilter",
}


def get_server_url() -> str:
    """
    Get the pcap server URL from environment variable or use default.

    Environment variables:
    - PCAP_SERVER_URL: Custom server URL
    """
    return os.environ.get("PCAP_SERVER_URL", DEFAULT_SERVER_URL)


def get_api_key(cli_arg: str | None = None) -> str | None:
    """
    Get API key from multiple sources in priority order.

    Priority (highest to lowest):
    1. Command line argument (--api-key)
    2. Environment variable (PCAP_API_KEY)
    3. Config file (~/.pcap/config)

    Config file format (~/.pcap/config):
        api_key=pcap_abc123...
    """
    if cli_arg:
        return cli_arg

    env_key = os.environ.get("PCAP_API_KEY")
    if env_key:
        return env_key

    config_path = Path.home() / ".pcap" / "config"
    if config_path.exists():
        try:
            for line in config_path.read_text().splitlines():
                line = line.strip()
                if line.startswith("api_key="):
                    return line[8:].strip()
        except OSError:
            pass  # unreadable config behaves like a missing one

    return None


def build_query(args: argparse.Namespace) -> dict[str, Any]:
    """Collect the query options that were given on the command line."""
    query = {}
    for option, wire_key in QUERY_OPTIONS.items():
        value = getattr(args, option)
        if value is not None:
            query[wire_key] = value
    return query


def format_status(status: dict[str, Any]) -> str:
    """One-line summary of a job status."""
    line = (
        f"{status['jobId']:<38} {status['jobStatus']:<10} "
        f"{status.get('percentComplete', 0):>6.1f}%"
    )
    if "pageTotal" in status:
        line += f"  pages={status['pageTotal']}"
    if status.get("description"):
        line += f"  {status['description']}"
    return line


def wait_for_job(
    job_id: str,
    server_url: str,
    api_key: str | None,
    interval: float = 2.0,
) -> dict[str, Any] | None:
    """Poll a job until it reaches a terminal state."""
    while True:
        status = get_status(job_id, server_url=server_url, api_key=api_key)
        if status is None or status["jobStatus"] in TERMINAL_STATES:
            return status
        print(format_status(status), file=sys.stderr)
        time.sleep(interval)


def add_api_key_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--api-key",
        dest="api_key",
        help="API key for authentication (can also use PCAP_API_KEY env var or ~/.pcap/config)",
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pcap query CLI")
    subparsers = parser.add_subparsers(dest="command")

    # pcap submit [filter options] [--wait]
    submit_parser = subparsers.add_parser("submit", help="Submit a fixed filter query")
    submit_parser.add_argument("--base-path")
    submit_parser.add_argument("--base-interim-result-path")
    submit_parser.add_argument("--final-output-path")
    submit_parser.add_argument("--start-time-ms", type=int)
    submit_parser.add_argument("--end-time-ms", type=int)
    submit_parser.add_argument("--num-reducers", type=int)
    submit_parser.add_argument("--ip-src-addr")
    submit_parser.add_argument("--ip-dst-addr")
    submit_parser.add_argument("--ip-src-port", type=int)
    submit_parser.add_argument("--ip-dst-port", type=int)
    submit_parser.add_argument("--protocol")
    submit_parser.add_argument(
        "--include-reverse",
        action="store_const",
        const=True,
        default=None,
        help="Also match traffic flowing in the opposite direction",
    )
    submit_parser.add_argument("--packet-filter", help="Raw filter expression")
    submit_parser.add_argument(
        "--wait", action="store_true", help="Poll until the job finishes"
    )
    add_api_key_argument(submit_parser)

    # pcap status <job_id>
    status_parser = subparsers.add_parser("status", help="Show the status of a job")
    status_parser.add_argument("job_id")
    add_api_key_argument(status_parser)

    # pcap wait <job_id>
    wait_parser = subparsers.add_parser("wait", help="Poll a job until it finishes")
    wait_parser.add_argument("job_id")
    wait_parser.add_argument(
        "--interval", type=float, default=2.0, help="Seconds between polls"
    )
    add_api_key_argument(wait_parser)

    # pcap list [--json]
    list_parser = subparsers.add_parser("list", help="List your jobs")
    list_parser.add_argument(
        "--json", dest="json_mode", action="store_true", help="Output in JSON format"
    )
    add_api_key_argument(list_parser)

    # pcap kill <job_id>
    kill_parser = subparsers.add_parser("kill", help="Kill a running job")
    kill_parser.add_argument("job_id")
    add_api_key_argument(kill_parser)

    # pcap pdml <job_id> --page N
    pdml_parser = subparsers.add_parser("pdml", help="Decode a result page as JSON")
    pdml_parser.add_argument("job_id")
    pdml_parser.add_argument("--page", type=int, default=1)
    add_api_key_argument(pdml_parser)

    # pcap download <job_id> --page N --output FILE
    download_parser = subparsers.add_parser(
        "download", help="Download a result page as a pcap file"
    )
    download_parser.add_argument("job_id")
    download_parser.add_argument("--page", type=int, default=1)
    download_parser.add_argument("--output", type=Path)
    add_api_key_argument(download_parser)

    return parser


def run_command(args: argparse.Namespace, server_url: str, api_key: str | None) -> int:
    if args.command == "submit":
        status = submit_fixed(build_query(args), server_url=server_url, api_key=api_key)
        print(status["jobId"])
        if args.wait:
            status = wait_for_job(status["jobId"], server_url, api_key)
            if status is None:
                print("Error: Job disappeared", file=sys.stderr)
                return 1
            print(format_status(status))
            return 0 if status["jobStatus"] == "SUCCEEDED" else 1
        return 0

    if args.command in ("status", "wait", "kill"):
        if args.command == "status":
            status = get_status(args.job_id, server_url=server_url, api_key=api_key)
        elif args.command == "wait":
            status = wait_for_job(args.job_id, server_url, api_key, args.interval)
        else:
            status = kill_job(args.job_id, server_url=server_url, api_key=api_key)
        if status is None:
            print(f"Error: Job not found: {args.job_id}", file=sys.stderr)
            return 1
        print(format_status(status))
        return 0

    if args.command == "list":
        jobs = list_jobs(server_url=server_url, api_key=api_key)
        if args.json_mode:
            print(json.dumps(jobs, indent=2))
        elif not jobs:
            print("No jobs found.")
        else:
            for status in jobs:
                print(format_status(status))
        return 0

    if args.command == "pdml":
        document = get_pdml(
            args.job_id, args.page, server_url=server_url, api_key=api_key
        )
        if document is None:
            print(f"Error: Page {args.page} not found", file=sys.stderr)
            return 1
        print(json.dumps(document, indent=2))
        return 0

    if args.command == "download":
        destination = args.output or Path(f"pcap_{args.job_id}_{args.page}.pcap")
        if not download_raw(
            args.job_id, args.page, destination, server_url=server_url, api_key=api_key
        ):
            print(f"Error: Page {args.page} not found", file=sys.stderr)
            return 1
        print(f"Saved page {args.page} to {destination}")
        return 0

    return 2


def main():
    """Main entry point for the pcap CLI."""
    parser = create_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    server_url = get_server_url()
    api_key = get_api_key(args.api_key)

    try:
        sys.exit(run_command(args, server_url, api_key))
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        error_msg = str(e).lower()
        if "401" in error_msg or "403" in error_msg:
            print(
                "\nAuthentication required. Please provide an API key using one of:",
                file=sys.stderr,
            )
            print("  1. Command line flag: --api-key <key>", file=sys.stderr)
            print("  2. Environment variable: PCAP_API_KEY=<key>", file=sys.stderr)
            print(
                "  3. Config file: ~/.pcap/config (format: api_key=<key>)",
                file=sys.stderr,
            )
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nStopped. Jobs keep running on the server.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
