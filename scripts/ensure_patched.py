"""Install, patch and repair the newest supported release of the desktop app."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path


def ensure_project_root_on_sys_path() -> Path:
    """Ensure the project root is importable when the script runs standalone."""

    project_root = Path(__file__).resolve().parent.parent
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)
    return project_root


ensure_project_root_on_sys_path()

from app.config import get_patcher_config, load_patcher_config
from app.version import get_app_version
from services.patcher import PatchStageError, PatcherError, build_patch_service
from shared.logging_config import ensure_app_logging, set_console_level


_LOGGER = logging.getLogger("scripts.ensure_patched")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-download and re-patch even when the installed version is current.",
    )
    parser.add_argument(
        "--skip-patches",
        action="store_true",
        help="Safe mode: install without injecting, only finalize the bundle.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a JSON file overriding the bundled configuration.",
    )
    parser.add_argument(
        "--offline-ok",
        action="store_true",
        help="Keep the installed version when the release source is unreachable.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Echo debug messages to the console.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_patcher_config(args.config) if args.config else get_patcher_config()

    log_path = ensure_app_logging(config.data_dir / "logs")
    if args.verbose:
        set_console_level(logging.DEBUG)
    _LOGGER.info("webext-patcher %s (log: %s)", get_app_version(), log_path)

    service = build_patch_service(config)
    try:
        if args.offline_ok:
            outcome = service.ensure_patched_or_keep_current(
                force=args.force, skip_patches=args.skip_patches
            )
        else:
            outcome = service.ensure_patched(force=args.force, skip_patches=args.skip_patches)
    except PatchStageError as exc:
        _LOGGER.error("Patch run failed while %s: %s", exc.stage, exc.cause)
        return 1
    except PatcherError as exc:
        _LOGGER.error("Patch run failed: %s", exc)
        return 1

    _LOGGER.info(
        "Ready: %s (installed=%s, patched=%s, finalized=%s)",
        outcome.version,
        outcome.installed,
        outcome.patched,
        outcome.finalized,
    )
    print(service.layout.executable)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
