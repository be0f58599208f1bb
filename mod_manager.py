"""
Altair Mod Manager - Core Logic

Downloads the add-ons listed in the Altair manifest, extracts them to where the
game expects them, and tracks what was installed so it can be removed again.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

import umod
from archive_extractor import extract_archive, extract_archive_async
from download_manager import DownloadManager, ProgressCallback
from errors import (
    InvalidArgumentError,
    ModManagerError,
    ModOperationError,
    OperationCancelledError,
    StorageError,
)
from file_paths import FilePaths
from manifest_schema import ModDefinition
from manifest_service import GameTitle, ManifestService
from patcher import restore_backup
from settings_store import AltairSettings, SettingsStore

UMOD_TEMPLATE_NAME = "ac1.txt"

_log = logging.getLogger(__name__)


class ModIdentifiers:
    ASI_LOADER = "asi_loader"
    EAGLE_PATCH = "eagle_patch"
    ALTAIR_FIX = "altair_fix"
    RESHADE = "reshade"
    UMOD = "umod"
    OVERHAUL = "overhaul"

    ALL = (ASI_LOADER, EAGLE_PATCH, ALTAIR_FIX, RESHADE, UMOD, OVERHAUL)

    _NAMES = {
        ASI_LOADER: "ASI Loader",
        EAGLE_PATCH: "Eagle Patch",
        ALTAIR_FIX: "Altair Fix",
        RESHADE: "ReShade",
        UMOD: "UMod",
        OVERHAUL: "Overhaul",
    }

    @classmethod
    def get_mod_name(cls, mod_id: str) -> str:
        return cls._NAMES.get(mod_id, mod_id)


@dataclass(frozen=True)
class InstallPlan:
    """Where an add-on goes. Directory fields name ``FilePaths`` properties."""

    output_dir: str
    file_filter: Optional[tuple[str, ...]] = None
    dedicated: bool = False  # output_dir belongs to the add-on alone
    create_before: tuple[str, ...] = ()
    create_after: tuple[str, ...] = ()


INSTALL_PLANS: dict[str, InstallPlan] = {
    ModIdentifiers.ASI_LOADER: InstallPlan("base_dir", create_after=("scripts_dir",)),
    ModIdentifiers.EAGLE_PATCH: InstallPlan("scripts_dir", file_filter=(".ini", ".asi")),
    ModIdentifiers.ALTAIR_FIX: InstallPlan("scripts_dir", file_filter=(".ini", ".asi")),
    ModIdentifiers.RESHADE: InstallPlan("scripts_dir"),
    ModIdentifiers.UMOD: InstallPlan("umod_dir", dedicated=True, create_before=("umod_dir",)),
    ModIdentifiers.OVERHAUL: InstallPlan(
        "overhaul_dir", dedicated=True, create_before=("overhaul_dir",)
    ),
}


@dataclass
class InstalledModRecord:
    """Persisted record of an installed add-on for tracking."""

    mod_id: str
    version: str
    installed_files: list[str] = field(default_factory=list)  # relative to the plan's output dir


@dataclass
class UpdatableMod:
    id: str
    name: str
    current_version: str
    latest_version: str


class ModManager:
    """
    Main mod manager controller.

    Workflow:
        1. await initialize() to fetch the manifest
        2. await download_mod(id) to fetch an archive into downloads/
        3. install_mod(id) / uninstall_mod(id) to manage add-ons
    """

    def __init__(
        self,
        manifest_service: ManifestService,
        paths: FilePaths,
        title: GameTitle = GameTitle.ALTAIR,
        downloader: Optional[DownloadManager] = None,
        settings_store: Optional[SettingsStore[AltairSettings]] = None,
        log_callback: Optional[Callable[[str], None]] = None,
    ):
        self.manifest_service = manifest_service
        self.paths = paths
        self.title = GameTitle(title)
        self._owns_downloader = downloader is None
        self.downloader = downloader or DownloadManager()
        self.settings_store = settings_store
        self._log_cb = log_callback or print

        self.installed: dict[str, InstalledModRecord] = {}  # key = mod id
        self._load_installed_mods_manifest()

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        _log.info(msg.strip())
        self._log_cb(msg)

    # ── Installed Mods Tracking ───────────────────────────────────────

    def _load_installed_mods_manifest(self):
        path = self.paths.installed_mods_file
        if not path.exists():
            self.installed = {}
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            self.installed = {key: InstalledModRecord(**rec) for key, rec in data.items()}
            _log.debug("Loaded installed mods: %d mod(s) recorded", len(self.installed))
        except (OSError, ValueError, TypeError) as e:
            self.log(f"Warning: Could not load installed mods record: {e}")
            self.installed = {}

    def _save_installed_mods_manifest(self):
        data = {key: asdict(rec) for key, rec in self.installed.items()}
        path = self.paths.installed_mods_file
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def is_installed(self, mod_id: str) -> bool:
        return mod_id in self.installed

    # ── Helpers ───────────────────────────────────────────────────────

    def _plan(self, mod_id: str) -> InstallPlan:
        try:
            return INSTALL_PLANS[mod_id]
        except KeyError:
            raise InvalidArgumentError(f"No install plan for '{mod_id}'") from None

    def _dir(self, attr: str) -> Path:
        return getattr(self.paths, attr)

    def get_mod(self, mod_id: str) -> ModDefinition:
        return self.manifest_service.lookup(self.title, mod_id)

    def archive_path(self, mod: ModDefinition) -> Path:
        return self.paths.downloads_dir / mod.file_name

    def _update_settings(self, change: Callable[[AltairSettings], None], mod_name: str, action: str):
        if self.settings_store is None:
            return
        settings = self.settings_store.settings
        change(settings)
        try:
            self.settings_store.save(settings)
        except StorageError as exc:
            raise ModOperationError(mod_name, action, exc) from exc

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def initialize(self, force_refresh: bool = False):
        await self.manifest_service.fetch(self.title, force_refresh=force_refresh)

    async def aclose(self):
        if self._owns_downloader:
            await self.downloader.aclose()

    # ── Download ──────────────────────────────────────────────────────

    async def download_mod(
        self,
        mod_id: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event=None,
    ) -> Path:
        mod = self.get_mod(mod_id)
        save_path = self.archive_path(mod)
        self.log(f"Downloading {mod.name} {mod.version}...")
        try:
            await self.downloader.download_file(mod.url, save_path, on_progress, cancel_event)
        except OperationCancelledError:
            self.log(f"  Download of {mod.name} cancelled")
            raise
        except ModManagerError as exc:
            raise ModOperationError(mod.name, "download", exc) from exc
        self.log(f"  Saved to {save_path}")
        return save_path

    # ── Install ───────────────────────────────────────────────────────

    def _prepare_install(self, mod_id: str) -> tuple[ModDefinition, InstallPlan, Path]:
        mod = self.get_mod(mod_id)
        plan = self._plan(mod_id)
        self.log(f"Installing {mod.name} {mod.version}...")
        try:
            for attr in plan.create_before:
                self._dir(attr).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ModOperationError(mod.name, "extract", exc) from exc
        return mod, plan, self._dir(plan.output_dir)

    def _finish_install(self, mod_id: str, mod: ModDefinition, plan: InstallPlan, written: list[str]):
        try:
            for attr in plan.create_after:
                self._dir(attr).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ModOperationError(mod.name, "extract", exc) from exc

        for name in written:
            self.log(f"  Extracted: {name}")
        self.installed[mod_id] = InstalledModRecord(
            mod_id=mod_id, version=mod.version, installed_files=written
        )
        self._save_installed_mods_manifest()
        self._update_settings(
            lambda s: s.update_installed_mod_version(mod_id, mod.version), mod.name, "install"
        )
        self.log(f"  Successfully installed {mod.name} ({len(written)} files)")

    def install_mod(self, mod_id: str) -> list[str]:
        """Extract the downloaded archive for ``mod_id``; returns files written."""
        mod, plan, output_dir = self._prepare_install(mod_id)
        try:
            written = extract_archive(
                self.archive_path(mod), output_dir, plan.file_filter, kind=mod.archive_kind
            )
        except OperationCancelledError:
            raise
        except ModManagerError as exc:
            raise ModOperationError(mod.name, "extract", exc) from exc
        self._finish_install(mod_id, mod, plan, written)
        return written

    async def install_mod_async(self, mod_id: str, cancel_event=None) -> list[str]:
        mod, plan, output_dir = self._prepare_install(mod_id)
        try:
            written = await extract_archive_async(
                self.archive_path(mod),
                output_dir,
                plan.file_filter,
                kind=mod.archive_kind,
                cancel_event=cancel_event,
            )
        except OperationCancelledError:
            self.log(f"  Installation of {mod.name} cancelled")
            raise
        except ModManagerError as exc:
            raise ModOperationError(mod.name, "extract", exc) from exc
        self._finish_install(mod_id, mod, plan, written)
        return written

    # ── Uninstall ─────────────────────────────────────────────────────

    def _remove_recorded_files(self, output_dir: Path, rec: InstalledModRecord) -> int:
        removed = 0
        for rel in rec.installed_files:
            fp = output_dir.joinpath(*PurePosixPath(rel).parts)
            if fp.exists():
                fp.unlink()
                removed += 1
                self.log(f"  Removed: {rel}")
            else:
                self.log(f"  Already missing: {rel}")

            # Clean up empty parent dirs (not the output dir itself)
            parent = fp.parent
            while parent != output_dir and parent.exists() and not any(parent.iterdir()):
                parent.rmdir()
                self.log(f"  Removed empty dir: {parent.name}")
                parent = parent.parent
        return removed

    def uninstall_mod(self, mod_id: str, remove_umod_config: bool = False) -> int:
        """Remove an add-on's files. Removing something absent is a no-op."""
        plan = self._plan(mod_id)
        name = ModIdentifiers.get_mod_name(mod_id)
        rec = self.installed.get(mod_id)
        output_dir = self._dir(plan.output_dir)
        self.log(f"Uninstalling {name}...")

        removed = 0
        try:
            if plan.dedicated:
                if output_dir.exists():
                    removed = sum(1 for p in output_dir.rglob("*") if p.is_file())
                    shutil.rmtree(output_dir)
                    self.log(f"  Removed: {output_dir}")
                else:
                    self.log(f"  Already missing: {output_dir}")
            elif rec is not None:
                removed = self._remove_recorded_files(output_dir, rec)
            else:
                self.log("  Not installed, nothing to remove")

            if mod_id == ModIdentifiers.UMOD and remove_umod_config:
                umod.remove_game_from_appdata(self.paths, self.paths.altair_executable)
        except (OSError, ModManagerError) as exc:
            raise ModOperationError(name, "uninstall", exc) from exc

        if rec is not None:
            del self.installed[mod_id]
            self._save_installed_mods_manifest()
        self._update_settings(lambda s: s.remove_installed_mod_version(mod_id), name, "uninstall")

        self.log(f"  Successfully uninstalled {name} ({removed} files)")
        return removed

    def uninstall_all(self):
        """Remove every add-on, restore the original executable and reset settings."""
        self.log("Removing all mods...")
        for mod_id in ModIdentifiers.ALL:
            self.uninstall_mod(mod_id, remove_umod_config=True)

        if restore_backup(self.paths.altair_executable):
            self.log("  Restored original game executable")
        else:
            self.log("  No executable backup found, leaving the executable as is")

        if self.settings_store is not None:
            self.settings_store.reset()
        self.log("All mods removed")

    # ── uMod ──────────────────────────────────────────────────────────

    def setup_umod(self) -> Path:
        """Register the game with uMod and enable the Overhaul texture pack."""
        name = ModIdentifiers.get_mod_name(ModIdentifiers.UMOD)
        exe = self.paths.altair_executable
        try:
            umod.setup_appdata(self.paths, exe)
            template = umod.setup_save_file(
                self.paths, exe, UMOD_TEMPLATE_NAME, [str(self.paths.overhaul_tpf_file)]
            )
        except (OSError, ModManagerError) as exc:
            raise ModOperationError(name, "set up", exc) from exc
        self.log(f"uMod configured with template {template.name}")
        return template

    # ── Updates ───────────────────────────────────────────────────────

    def _installed_versions(self) -> dict[str, str]:
        if self.settings_store is not None:
            return dict(self.settings_store.settings.installed_mod_versions)
        return {mod_id: rec.version for mod_id, rec in self.installed.items()}

    async def check_for_updates(self, force_refresh: bool = True) -> list[UpdatableMod]:
        """List installed add-ons whose manifest version differs from the installed one."""
        manifest = await self.manifest_service.fetch(self.title, force_refresh=force_refresh)

        updates = []
        for mod_id, current in self._installed_versions().items():
            mod = manifest.mods.get(mod_id)
            if mod is None:
                _log.debug("Installed mod %s is no longer in the manifest", mod_id)
                continue
            if mod.version != current:
                updates.append(UpdatableMod(mod_id, mod.name, current, mod.version))

        if self.settings_store is not None:
            self.settings_store.settings.last_update_check_date = datetime.now()
            try:
                self.settings_store.save()
            except StorageError as exc:
                _log.warning("Could not record the update check time: %s", exc)
        self.log(f"Update check complete: {len(updates)} update(s) available")
        return updates

    async def update_mod(
        self,
        mod_id: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event=None,
    ) -> list[str]:
        await self.download_mod(mod_id, on_progress, cancel_event)
        return await self.install_mod_async(mod_id, cancel_event)
