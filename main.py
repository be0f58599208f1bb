#!/usr/bin/env python3
"""Altair Mod Manager - Entry Point"""

import argparse
import asyncio
import faulthandler
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

import patcher
from errors import ModManagerError
from file_paths import FilePaths
from manifest_service import GameTitle, ManifestService
from mod_manager import ModIdentifiers, ModManager
from settings_store import AltairSettings, LogLevel, SettingsStore


def setup_logging(paths: FilePaths, level: int = logging.DEBUG) -> tuple[logging.Logger, Path]:
    log_dir = paths.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        paths.log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))

    console = logging.StreamHandler()
    console.setLevel(logging.WARNING)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)
    root.addHandler(console)
    return logging.getLogger("altairmodmanager"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # C-level crashes (segfault, abort), faulthandler writes to a separate
    # file because it can't use Python logging machinery after a crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Altair Mod Manager")
    parser.add_argument("--game-dir", help="Folder containing AssassinsCreed_Dx9.exe")
    parser.add_argument("--appdata-dir", help="Override %%APPDATA%% (uMod registration)")
    parser.add_argument("--settings-file", help="Override config/config.json")
    parser.add_argument("--log-level", choices=[lvl.value for lvl in LogLevel])

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show the mods in the manifest")

    p = sub.add_parser("download", help="Download a mod archive")
    p.add_argument("mod_id", choices=ModIdentifiers.ALL)

    p = sub.add_parser("install", help="Install a mod")
    p.add_argument("mod_id", choices=ModIdentifiers.ALL)
    p.add_argument("--download", action="store_true", help="Download the archive first")

    p = sub.add_parser("uninstall", help="Uninstall a mod")
    p.add_argument("mod_id", choices=ModIdentifiers.ALL)
    p.add_argument("--remove-umod-config", action="store_true")

    sub.add_parser("update-check", help="List installed mods with newer versions")

    p = sub.add_parser("patch", help="Patch the game executable")
    p.add_argument("action", choices=["laa", "laa-revert", "stutter", "stutter-revert"])

    sub.add_parser("umod-setup", help="Register the game and Overhaul template with uMod")
    sub.add_parser("reset", help="Uninstall everything and restore the executable")
    return parser.parse_args(argv)


def _print_progress(percent: int):
    print(f"\r  {percent:3d}%", end="\n" if percent == 100 else "", flush=True)


def run_patch(paths: FilePaths, store: SettingsStore[AltairSettings], action: str):
    exe = paths.altair_executable
    settings = store.settings
    if action == "laa":
        changed = patcher.large_address_aware_patch(exe)
        settings.tweaks.large_address_aware = True
        print("Large Address Aware enabled" if changed else "Large Address Aware already enabled")
    elif action == "laa-revert":
        changed = patcher.large_address_aware_revert(exe)
        settings.tweaks.large_address_aware = False
        print("Large Address Aware disabled" if changed else "Large Address Aware was not enabled")
    elif action == "stutter":
        patcher.stutter_patch(exe)
        settings.tweaks.stutter_fix = True
        print("Stutter fix applied")
    else:
        patcher.stutter_patch_revert(exe)
        settings.tweaks.stutter_fix = False
        print("Stutter fix reverted")
    store.save(settings)


async def run_command(args: argparse.Namespace, paths: FilePaths, store: SettingsStore[AltairSettings]) -> int:
    if args.command == "patch":
        run_patch(paths, store, args.action)
        return 0

    service = ManifestService()
    manager = ModManager(service, paths, GameTitle.ALTAIR, settings_store=store)
    try:
        if args.command in ("list", "download", "install", "update-check"):
            await manager.initialize()

        if args.command == "list":
            versions = store.settings.installed_mod_versions
            for mod_id, mod in service.cache.get(GameTitle.ALTAIR).mods.items():
                installed = versions.get(mod_id, "-")
                print(f"{mod_id:<12} {mod.name:<20} {mod.version:<10} installed: {installed}")
        elif args.command == "download":
            await manager.download_mod(args.mod_id, _print_progress)
        elif args.command == "install":
            if args.download:
                await manager.download_mod(args.mod_id, _print_progress)
            await manager.install_mod_async(args.mod_id)
            if args.mod_id == ModIdentifiers.UMOD:
                store.settings.tweaks.umod = True
                store.save()
            elif args.mod_id == ModIdentifiers.RESHADE:
                store.settings.tweaks.reshade = True
                store.save()
        elif args.command == "uninstall":
            manager.uninstall_mod(args.mod_id, remove_umod_config=args.remove_umod_config)
        elif args.command == "update-check":
            updates = await manager.check_for_updates(force_refresh=False)
            if not updates:
                print("All mods are up to date")
            for upd in updates:
                print(f"{upd.name}: {upd.current_version} -> {upd.latest_version}")
        elif args.command == "umod-setup":
            manager.setup_umod()
        elif args.command == "reset":
            manager.uninstall_all()
    finally:
        await manager.aclose()
        await service.aclose()
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    paths = FilePaths.from_base(args.game_dir, args.appdata_dir)
    store = SettingsStore(args.settings_file or paths.settings_file, AltairSettings)

    level = LogLevel(args.log_level) if args.log_level else store.settings.log_level
    logger, log_dir = setup_logging(paths, level.to_logging())
    install_crash_handler(logger, log_dir)
    logger.info("Starting Altair Mod Manager (%s)", args.command)

    try:
        return asyncio.run(run_command(args, paths, store))
    except ModManagerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
