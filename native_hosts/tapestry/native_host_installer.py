from __future__ import annotations

import argparse
import contextlib
import json
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

HOST_NAME = "com.jtdowney.tapestry"
HOST_DESCRIPTION = "Native messaging host for Tapestry browser extension"
CHROME_EXTENSION_ID = "cfopmjjanjaelkecandcodopjkmekmlh"
FIREFOX_EXTENSION_ID = "tapestry@jtdowney.com"
BROWSERS = ("chrome", "firefox")

_LOGGER = logging.getLogger("tapestry.host.installer")


@dataclass(frozen=True, slots=True)
class InstallTarget:
    label: str
    browser: str
    path: Path


@dataclass(slots=True)
class InstallReport:
    ok: bool = False
    wrote: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    wrapper_path: str | None = None


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _split_ids(raw: str | None) -> list[str]:
    return [s.strip() for s in str(raw or "").split(",") if s.strip()]


def _dedupe(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def build_manifest(browser: str, host_path: Path, extension_ids: Sequence[str]) -> dict[str, object]:
    """Host manifest for one browser family.

    Chromium browsers authorize by origin, Firefox by add-on id.
    """
    manifest: dict[str, object] = {
        "name": HOST_NAME,
        "description": HOST_DESCRIPTION,
        "path": str(host_path),
        "type": "stdio",
    }
    if browser == "firefox":
        manifest["allowed_extensions"] = list(extension_ids)
    else:
        manifest["allowed_origins"] = [f"chrome-extension://{ext_id}/" for ext_id in extension_ids]
    return manifest


def _wrapper_path(root: Path, *, platform: str, venv_dir: Path | None = None) -> Path:
    venv_dir = venv_dir or (root / ".venv")
    if platform == "win32":
        candidate = venv_dir / "Scripts" / "tapestry-native-host.cmd"
    else:
        candidate = venv_dir / "bin" / "tapestry-native-host"
    if venv_dir.exists():
        return candidate
    base = root / ".native-host"
    return base / ("tapestry-native-host.cmd" if platform == "win32" else "tapestry-native-host")


def _write_wrapper(path: Path, *, python_exe: str, root: Path, platform: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    py = str(python_exe)
    root_str = str(root)
    if platform == "win32":
        content = "\n".join(
            [
                "@echo off",
                "setlocal",
                f'set "TAPESTRY_ROOT={root_str}"',
                'set "PYTHONPATH=%TAPESTRY_ROOT%;%PYTHONPATH%"',
                f'"{py}" -m native_hosts.tapestry.native_host',
                "",
            ]
        )
    else:
        content = "\n".join(
            [
                "#!/usr/bin/env bash",
                "set -euo pipefail",
                f'ROOT="{root_str}"',
                'export PYTHONPATH="$ROOT:${PYTHONPATH:-}"',
                f'exec "{py}" -m native_hosts.tapestry.native_host',
                "",
            ]
        )
    path.write_text(content, encoding="utf-8")
    if platform != "win32":
        path.chmod(0o755)


def _targets_for_platform(platform: str, home: Path, browsers: Sequence[str]) -> list[InstallTarget]:
    targets: list[InstallTarget] = []
    if platform == "darwin":
        base = home / "Library" / "Application Support"
        if "chrome" in browsers:
            targets += [
                InstallTarget("chrome", "chrome", base / "Google" / "Chrome" / "NativeMessagingHosts"),
                InstallTarget("chromium", "chrome", base / "Chromium" / "NativeMessagingHosts"),
                InstallTarget("brave", "chrome", base / "BraveSoftware" / "Brave-Browser" / "NativeMessagingHosts"),
                InstallTarget("edge", "chrome", base / "Microsoft Edge" / "NativeMessagingHosts"),
            ]
        if "firefox" in browsers:
            targets.append(InstallTarget("firefox", "firefox", base / "Mozilla" / "NativeMessagingHosts"))
    elif platform.startswith("linux"):
        cfg = home / ".config"
        if "chrome" in browsers:
            targets += [
                InstallTarget("chrome", "chrome", cfg / "google-chrome" / "NativeMessagingHosts"),
                InstallTarget("chromium", "chrome", cfg / "chromium" / "NativeMessagingHosts"),
                InstallTarget("brave", "chrome", cfg / "BraveSoftware" / "Brave-Browser" / "NativeMessagingHosts"),
                InstallTarget("edge", "chrome", cfg / "microsoft-edge" / "NativeMessagingHosts"),
            ]
        if "firefox" in browsers:
            targets.append(InstallTarget("firefox", "firefox", home / ".mozilla" / "native-messaging-hosts"))
    return targets


def _windows_manifest_path(home: Path, browser: str) -> Path:
    local = os.environ.get("LOCALAPPDATA")
    base = Path(local) if local else (home / "AppData" / "Local")
    return base / "Tapestry" / "NativeMessagingHosts" / browser / f"{HOST_NAME}.json"


def _windows_registry_targets(browsers: Sequence[str]) -> list[tuple[str, str, str]]:
    targets: list[tuple[str, str, str]] = []
    if "chrome" in browsers:
        targets += [
            ("chrome", "chrome", r"Software\Google\Chrome\NativeMessagingHosts"),
            ("chromium", "chrome", r"Software\Chromium\NativeMessagingHosts"),
            ("edge", "chrome", r"Software\Microsoft\Edge\NativeMessagingHosts"),
        ]
    if "firefox" in browsers:
        targets.append(("firefox", "firefox", r"Software\Mozilla\NativeMessagingHosts"))
    return targets


def _write_manifest(path: Path, manifest: dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    if os.name != "nt":
        with contextlib.suppress(OSError):
            path.chmod(0o644)


def install_native_host(
    *,
    browsers: Sequence[str] = BROWSERS,
    root: Path | None = None,
    python_exe: str | None = None,
    platform: str | None = None,
    home: Path | None = None,
    chrome_ids: Sequence[str] | None = None,
    firefox_ids: Sequence[str] | None = None,
) -> InstallReport:
    report = InstallReport()
    root = root or _repo_root()
    platform = platform or sys.platform
    home = home or Path.home()
    python_exe = python_exe or sys.executable

    unknown = [b for b in browsers if b not in BROWSERS]
    if unknown:
        report.errors.append(f"unsupported browser(s): {', '.join(unknown)}")
        return report

    ids = {
        "chrome": _dedupe(
            [CHROME_EXTENSION_ID, *(chrome_ids or _split_ids(os.environ.get("TAPESTRY_EXTENSION_IDS")))]
        ),
        "firefox": _dedupe(
            [FIREFOX_EXTENSION_ID, *(firefox_ids or _split_ids(os.environ.get("TAPESTRY_FIREFOX_EXTENSION_IDS")))]
        ),
    }

    wrapper = _wrapper_path(root, platform=platform)
    try:
        _write_wrapper(wrapper, python_exe=python_exe, root=root, platform=platform)
    except OSError as exc:
        report.errors.append(f"failed to create native host wrapper: {exc}")
        return report
    report.wrapper_path = str(wrapper)

    if platform == "win32":
        try:
            import winreg  # type: ignore[import-not-found]
        except ImportError as exc:
            report.errors.append(f"winreg unavailable: {exc}")
            return report

        wrote_any = False
        for label, browser, reg_path in _windows_registry_targets(browsers):
            manifest_file = _windows_manifest_path(home, browser)
            try:
                _write_manifest(manifest_file, build_manifest(browser, wrapper, ids[browser]))
                full_path = f"{reg_path}\\{HOST_NAME}"
                with winreg.CreateKey(winreg.HKEY_CURRENT_USER, full_path) as key_handle:
                    winreg.SetValueEx(key_handle, "", 0, winreg.REG_SZ, str(manifest_file))
                report.wrote.append(f"{label}:HKCU\\{full_path}")
                wrote_any = True
            except OSError as exc:
                report.errors.append(f"{label}: registry write failed: {exc}")
        report.ok = wrote_any
        return report

    targets = _targets_for_platform(platform, home, browsers)
    if not targets:
        report.errors.append(f"unsupported platform for installer: {platform}")
        return report

    out_name = f"{HOST_NAME}.json"
    wrote_any = False
    for target in targets:
        try:
            out_path = target.path / out_name
            _write_manifest(out_path, build_manifest(target.browser, wrapper, ids[target.browser]))
            report.wrote.append(f"{target.label}:{out_path}")
            wrote_any = True
        except OSError as exc:
            report.errors.append(f"{target.label}: failed to install: {exc}")

    report.ok = wrote_any
    return report


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tapestry-host-install",
        description="Register the Tapestry native messaging host with local browsers.",
    )
    parser.add_argument(
        "--browser",
        action="append",
        choices=BROWSERS,
        help="browser family to register (repeatable; default: all)",
    )
    parser.add_argument("--extension-id", action="append", default=[], help="extra Chromium extension id")
    parser.add_argument("--firefox-extension-id", action="append", default=[], help="extra Firefox add-on id")
    parser.add_argument("--python", dest="python_exe", default=None, help="interpreter used by the host wrapper")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    report = install_native_host(
        browsers=args.browser or BROWSERS,
        python_exe=args.python_exe,
        chrome_ids=args.extension_id or None,
        firefox_ids=args.firefox_extension_id or None,
    )
    for line in report.wrote:
        _LOGGER.info("installed %s", line)
    for line in report.errors:
        _LOGGER.warning("%s", line)
    if report.wrapper_path:
        _LOGGER.info("host wrapper: %s", report.wrapper_path)
    return 0 if report.ok else 1


__all__ = [
    "BROWSERS",
    "CHROME_EXTENSION_ID",
    "FIREFOX_EXTENSION_ID",
    "HOST_NAME",
    "InstallReport",
    "InstallTarget",
    "build_manifest",
    "install_native_host",
    "main",
]


if __name__ == "__main__":
    raise SystemExit(main())
