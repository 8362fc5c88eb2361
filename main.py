#!/usr/bin/env python3
"""
etcd-diagnosis - one-stop etcd diagnosis tool.

Online mode runs the built-in checks against a live cluster and writes etcd_diagnosis_report.json.
Offline mode (--offline --data-dir DIR) reads a stopped member's backend file and prints key stats.
"""

import argparse
import getpass
import logging
import os
import sys
from typing import List, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger("etcd_diagnosis")

#
# NOTE: Keep heavy imports lazy (inside functions) so --offline never loads the network stack
# and --version stays instant.
#


def _duration(value: str) -> float:
    from etcd_diagnosis.core.config import parse_duration

    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _csv(value: str) -> List[str]:
    return [x.strip() for x in value.split(",") if x.strip()]


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _log_level(value: str) -> str:
    level = (value or "").strip().upper()
    if level not in LOG_LEVELS:
        raise argparse.ArgumentTypeError(f"invalid log level: {value!r} (choose from {', '.join(LOG_LEVELS)})")
    return level


def _bool(value: str) -> bool:
    raw = (value or "").strip().lower()
    if raw in ("1", "true", "yes", "y", "on"):
        return True
    if raw in ("0", "false", "no", "n", "off"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    from etcd_diagnosis.core.config import load_global_config

    d = load_global_config()

    parser = argparse.ArgumentParser(
        prog="etcd-diagnosis",
        description="One-stop etcd diagnosis tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Diagnose a local single-member cluster
  python main.py --endpoints 127.0.0.1:2379

  # Diagnose every member advertised by the cluster
  python main.py --endpoints 10.0.0.1:2379 --cluster

  # Inspect a stopped member's data directory
  python main.py --offline --data-dir /var/lib/etcd
        """,
    )

    parser.add_argument("--endpoints", type=_csv, default=list(d.endpoints), help="comma separated etcd endpoints")
    parser.add_argument(
        "--cluster",
        dest="use_cluster_endpoints",
        action="store_true",
        default=d.use_cluster_endpoints,
        help="use all endpoints from the cluster member list",
    )

    parser.add_argument(
        "--dial-timeout", type=_duration, default=d.dial_timeout, help="dial timeout for client connections"
    )
    parser.add_argument(
        "--command-timeout",
        type=_duration,
        default=d.command_timeout,
        help="command timeout (excluding dial timeout)",
    )
    parser.add_argument(
        "--keepalive-time", type=_duration, default=d.keepalive_time, help="keepalive time for client connections"
    )
    parser.add_argument(
        "--keepalive-timeout",
        type=_duration,
        default=d.keepalive_timeout,
        help="keepalive timeout for client connections",
    )

    parser.add_argument(
        "--insecure-transport",
        dest="insecure",
        type=_bool,
        nargs="?",
        const=True,
        default=d.insecure,
        help="disable transport security for client connections (default: true)",
    )
    parser.add_argument(
        "--insecure-skip-tls-verify",
        dest="insecure_skip_verify",
        action="store_true",
        default=d.insecure_skip_verify,
        help="skip server certificate verification",
    )
    parser.add_argument(
        "--cert", dest="cert_file", default=d.cert_file, help="identify secure client using this TLS certificate file"
    )
    parser.add_argument(
        "--key", dest="key_file", default=d.key_file, help="identify secure client using this TLS key file"
    )
    parser.add_argument(
        "--cacert",
        dest="ca_file",
        default=d.ca_file,
        help="verify certificates of TLS-enabled secure servers using this CA bundle",
    )

    parser.add_argument(
        "--user",
        default=d.username,
        help="username[:password] for authentication (prompt if password is not supplied)",
    )
    parser.add_argument(
        "--password",
        default=None,
        help="password for authentication (if this option is used, --user option shouldn't include password)",
    )
    parser.add_argument(
        "--discovery-srv",
        "-d",
        dest="dns_domain",
        default=d.dns_domain,
        help="domain name to query for SRV records describing cluster endpoints",
    )
    parser.add_argument(
        "--discovery-srv-name",
        dest="dns_service",
        default=d.dns_service,
        help="service name to query when using DNS discovery",
    )
    parser.add_argument(
        "--insecure-discovery",
        type=_bool,
        nargs="?",
        const=True,
        default=d.insecure_discovery,
        help="accept insecure SRV records describing cluster endpoints (default: true)",
    )

    parser.add_argument(
        "--etcd-storage-quota-bytes",
        dest="db_quota_bytes",
        type=int,
        default=d.db_quota_bytes,
        help="etcd storage quota in bytes (the value passed to etcd instance by flag --quota-backend-bytes)",
    )

    parser.add_argument(
        "--version", dest="print_version", action="store_true", default=False, help="print the version and exit"
    )

    parser.add_argument("--offline", action="store_true", default=d.offline, help="offline analysis")
    parser.add_argument("--data-dir", default=d.data_dir, help="path to data directory")
    parser.add_argument("--lock-timeout", type=_duration, default=5.0, help="offline: max wait for the db file lock")
    parser.add_argument(
        "--report-dir", default=".", help="directory for etcd_diagnosis_report.json (default: current directory)"
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("ETCD_DIAGNOSIS_LOG_LEVEL", "INFO"),
        type=_log_level,
        help="logging level: DEBUG, INFO, WARNING or ERROR (default: INFO)",
    )

    # Env-provided password survives unless overridden on the command line.
    parser.set_defaults(_env_password=d.password)
    return parser


def config_from_args(args: argparse.Namespace, *, prompt: bool = True):
    """Build the run's immutable GlobalConfig from parsed flags."""
    from etcd_diagnosis.core.config import GlobalConfig, split_user

    explicit_password = args.password if args.password is not None else ""
    if explicit_password and ":" in (args.user or ""):
        raise ValueError("--user option shouldn't include password when --password is set")

    username, password = split_user(args.user or "", explicit_password or args._env_password or "")
    if username and not password and ":" not in (args.user or "") and prompt:
        password = getpass.getpass("Password: ")

    return GlobalConfig(
        endpoints=list(args.endpoints),
        use_cluster_endpoints=args.use_cluster_endpoints,
        dns_domain=args.dns_domain,
        dns_service=args.dns_service,
        insecure_discovery=args.insecure_discovery,
        insecure=args.insecure,
        insecure_skip_verify=args.insecure_skip_verify,
        cert_file=args.cert_file,
        key_file=args.key_file,
        ca_file=args.ca_file,
        username=username,
        password=password,
        dial_timeout=args.dial_timeout,
        command_timeout=args.command_timeout,
        keepalive_time=args.keepalive_time,
        keepalive_timeout=args.keepalive_timeout,
        db_quota_bytes=args.db_quota_bytes,
        print_version=args.print_version,
        offline=args.offline,
        data_dir=args.data_dir,
    )


def run_diagnosis(args: argparse.Namespace) -> int:
    from etcd_diagnosis.dump import config_to_json_dict

    cfg = config_from_args(args)

    if cfg.print_version:
        from etcd_diagnosis import __version__

        print(f"etcd-diagnosis version: {__version__}")
        return 0

    if cfg.offline:
        from etcd_diagnosis.offline.analysis import analyze_offline

        analyze_offline(cfg.data_dir, lock_timeout=args.lock_timeout)
        return 0

    from etcd_diagnosis.diagnostics.engine import diagnose
    from etcd_diagnosis.diagnostics.registry import default_registry
    from etcd_diagnosis.storage.local_store import ReportWriter

    reg = default_registry(cfg)
    diagnose(config_to_json_dict(cfg), reg.plugins, writer=ReportWriter(base_dir=args.report_dir))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    from etcd_diagnosis.offline.bolt import StoreOpenError
    from etcd_diagnosis.storage.local_store import ReportError

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        return run_diagnosis(args)
    except (ReportError, StoreOpenError) as e:
        logger.error("%s", e)
        return 1
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
