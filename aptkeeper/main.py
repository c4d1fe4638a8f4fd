from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import AptKeeperConfig, load_config
from .errors import AptKeeperError
from .events import EventLog, EventSink
from .lib.distro import Distro, detect_distro, has_repo, official_repo_line
from .lib.holders import default_probe
from .lib.lock import LockArbiter
from .lib.retry import RetryPolicy
from .lib.sources import default_source_files
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .prompts import tty_confirm, zenity_confirm
from .reconcile import SourceReconciler

logger = logging.getLogger(__name__)


def _config(args: argparse.Namespace) -> AptKeeperConfig:
    cfg = load_config(args.config)
    if args.backup_root:
        cfg = AptKeeperConfig(raw={**cfg.raw, "backup_root": args.backup_root})
    return cfg


def _sink(args: argparse.Namespace) -> Optional[EventSink]:
    return EventLog.at(args.events).log if args.events else None


def _files(args: argparse.Namespace, cfg: AptKeeperConfig) -> List[str]:
    return list(args.files) if getattr(args, "files", None) else default_source_files(cfg)


def _distro(args: argparse.Namespace, cfg: AptKeeperConfig) -> Distro:
    if args.distro:
        return Distro(args.distro)
    distro = detect_distro(cfg.os_release)
    if distro is Distro.UNKNOWN:
        raise SystemExit(f"{args.subcmd}: unable to detect the distro from {cfg.os_release}; pass --distro")
    return distro


def cmd_scan(args: argparse.Namespace) -> int:
    cfg = _config(args)
    rec = SourceReconciler(cfg, sink=_sink(args))
    result = rec.scan(_files(args, cfg))
    report = result.report
    sys.stdout.write(report or "No duplicate source entries.\n")
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    cfg = _config(args)
    rec = SourceReconciler(cfg, sink=_sink(args))
    result = rec.apply(_files(args, cfg))
    if result.backup is None:
        print("No duplicate source entries; nothing changed.")
        return 0
    print(f"Backup: {result.backup.id}")
    for path in result.rewritten:
        print(f"Rewrote: {path}")
    return 0


def cmd_undo(args: argparse.Namespace) -> int:
    cfg = _config(args)
    if args.files and not args.markers:
        raise SystemExit("undo: file arguments only apply to --markers; a backup restore always covers its whole file set")
    rec = SourceReconciler(cfg, sink=_sink(args))
    if args.markers:
        restored = rec.undo(_files(args, cfg))
    elif args.backup:
        restored = rec.undo(args.backup)
    else:
        latest = rec.backups.latest()
        if latest is None:
            raise SystemExit("undo: no backups found; use --markers to strip markers instead")
        restored = rec.undo(latest)
    for path in restored:
        print(f"Restored: {path}")
    if not restored:
        print("Nothing to restore.")
    return 0


def cmd_backups(args: argparse.Namespace) -> int:
    cfg = _config(args)
    rec = SourceReconciler(cfg)
    for b in rec.backups.list_backups():
        print(f"{b.id}\t{len(b.files)} file(s)")
    return 0


def cmd_wait_lock(args: argparse.Namespace) -> int:
    cfg = _config(args)
    arbiter = LockArbiter(
        default_probe(cfg.lock_paths),
        resource=",".join(cfg.lock_paths),
        confirm=zenity_confirm if args.gui else tty_confirm,
        kill_grace_s=cfg.lock_kill_grace_s,
        probe_retry=RetryPolicy(max_attempts=cfg.retry_max_attempts, base_backoff_s=cfg.retry_base_backoff_s),
        sink=_sink(args),
    )
    timeout = args.timeout if args.timeout is not None else cfg.lock_timeout_s
    poll = args.poll if args.poll is not None else cfg.lock_poll_interval_s
    handle = arbiter.wait_for_lock(timeout, poll)
    print(f"Package lock available ({handle.state.value if handle.state else 'unknown'})")
    return 0


def cmd_check_repo(args: argparse.Namespace) -> int:
    cfg = _config(args)
    distro = _distro(args, cfg)
    line = official_repo_line(distro, args.suite or cfg.distro_suite)
    rec = SourceReconciler(cfg, sink=_sink(args))
    result = rec.scan(_files(args, cfg))
    if has_repo(result.entries, line, canonicalizer=rec.canon):
        print(f"OK: {line}")
        return 0
    print(f"MISSING: {line}")
    return 2


def cmd_ensure_repo(args: argparse.Namespace) -> int:
    cfg = _config(args)
    distro = _distro(args, cfg)
    rec = SourceReconciler(cfg, sink=_sink(args))
    backup = rec.ensure_repo(_files(args, cfg), distro, suite=args.suite or cfg.distro_suite)
    if backup is None:
        print("Official repository already configured.")
    else:
        print(f"Added official repository to {cfg.repo_file} (backup {backup.id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="aptkeeper")
    p.add_argument("--config", default=None, help="YAML config (defaults are used when omitted)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to aptkeeper log")
    p.add_argument("--events", default=None, help="Append structured JSON-lines events to this file")
    p.add_argument("--backup-root", default=None, help="Override the backup directory")
    p.add_argument("--gui", action="store_true", help="Ask for confirmation with zenity instead of the terminal")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = p.add_subparsers(dest="subcmd", required=True)

    sp = sub.add_parser("scan", help="Report duplicate source entries")
    sp.add_argument("files", nargs="*", help="Source files in scan order (default: sources.list + sources.list.d/*.list)")
    sp.set_defaults(func=cmd_scan)

    sp = sub.add_parser("apply", help="Back up, then comment out duplicate entries")
    sp.add_argument("files", nargs="*")
    sp.set_defaults(func=cmd_apply)

    sp = sub.add_parser("undo", help="Restore a backup (default: latest) or strip markers")
    grp = sp.add_mutually_exclusive_group()
    grp.add_argument("--backup", default=None, help="Backup id to restore")
    grp.add_argument("--markers", action="store_true", help="Strip markers in place instead of restoring a backup")
    sp.add_argument("files", nargs="*")
    sp.set_defaults(func=cmd_undo)

    sp = sub.add_parser("backups", help="List backups, newest first")
    sp.set_defaults(func=cmd_backups)

    sp = sub.add_parser("wait-lock", help="Wait for the package lock; offer to kill holders on timeout")
    sp.add_argument("--timeout", type=float, default=None, help="Seconds to wait before escalating")
    sp.add_argument("--poll", type=float, default=None, help="Seconds between polls")
    sp.set_defaults(func=cmd_wait_lock)

    for name, func, help_text in [
        ("check-repo", cmd_check_repo, "Exit 2 unless the official repository is configured"),
        ("ensure-repo", cmd_ensure_repo, "Add the official repository if it is missing"),
    ]:
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--distro", choices=[d.value for d in Distro if d is not Distro.UNKNOWN], default=None)
        sp.add_argument("--suite", default=None)
        sp.add_argument("files", nargs="*")
        sp.set_defaults(func=func)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    configure_logging(log_path=args.log, level=logging.DEBUG if args.verbose else logging.INFO, also_console=args.verbose)
    try:
        return int(args.func(args))
    except AptKeeperError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
