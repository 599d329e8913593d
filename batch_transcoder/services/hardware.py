"""
Detects the GPU vendor and OS family once per session.

The result only steers which hardware encoder suffix the plan resolver picks when
the user asks for GPU encoding. Detection never fails: anything unexpected yields
the "unknown" vendor, which makes the resolver use the software encoders.
"""

import platform as platform_module
import sys
from typing import Callable, List, Optional

from loguru import logger

from ..config.video import (
    GPU_VENDOR_NAMES,
    VENDOR_AMD,
    VENDOR_APPLE,
    VENDOR_INTEL,
    VENDOR_NVIDIA,
    VENDOR_UNKNOWN,
)
from ..domain.models import HardwareProfile
from ..utils.ffmpeg_utils import run_cmd

# Discrete GPUs first when a machine has several.
VENDOR_PRIORITY = (VENDOR_NVIDIA, VENDOR_AMD, VENDOR_INTEL, VENDOR_APPLE)

LSPCI_GPU_CLASSES = ("vga compatible controller", "3d controller", "display controller")

DETECTION_TIMEOUT_SECONDS = 30


def os_family(platform: str = sys.platform) -> str:
    if platform == "win32":
        return "windows"
    if platform == "darwin":
        return "macos"
    if platform.startswith("linux"):
        return "linux"
    return "other"


def vendor_from_name(name: str) -> str:
    """Maps a vendor or adapter description ('Intel Corporation', 'NVIDIA GeForce ...') to a vendor."""
    lowered = name.lower()
    for key, vendor in GPU_VENDOR_NAMES.items():
        if key in lowered:
            return vendor
    return VENDOR_UNKNOWN


def pick_vendor(gpu_names: List[str]) -> str:
    """Chooses one vendor from all detected adapters, preferring discrete GPUs."""
    vendors = {vendor_from_name(name) for name in gpu_names}
    for vendor in VENDOR_PRIORITY:
        if vendor in vendors:
            return vendor
    return VENDOR_UNKNOWN


# --- Probes ---
def _get_gpu_names_nvidia_smi(runner: Callable = run_cmd) -> List[str]:
    """
    Uses the `nvidia-smi` command to list NVIDIA GPU names.

    Returns:
        The GPU names, or an empty list if `nvidia-smi` fails or is not found.
    """
    result = runner(["nvidia-smi", "--query-gpu=gpu_name", "--format=csv,noheader"], timeout=DETECTION_TIMEOUT_SECONDS)
    if result is None or result.returncode != 0:
        logger.debug("nvidia-smi is not available.")
        return []
    names = [f"NVIDIA {line.strip()}" for line in result.stdout.splitlines() if line.strip()]
    if names:
        logger.debug(f"nvidia-smi check successful: {names}")
    return names


def _get_gpu_names_lspci(runner: Callable = run_cmd) -> List[str]:
    result = runner(["lspci"], timeout=DETECTION_TIMEOUT_SECONDS)
    if result is None or result.returncode != 0:
        logger.debug("lspci is not available.")
        return []
    names = []
    for line in result.stdout.splitlines():
        lowered = line.lower()
        for gpu_class in LSPCI_GPU_CLASSES:
            if gpu_class in lowered:
                # "00:02.0 VGA compatible controller: Intel Corporation UHD Graphics 620"
                names.append(line.split(":", 2)[-1].strip())
                break
    return names


def _get_gpu_names_windows(runner: Callable = run_cmd) -> List[str]:
    """Lists video controllers through WMI, largest adapter memory first."""
    result = runner(
        [
            "powershell",
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            "Get-CimInstance Win32_VideoController | Sort-Object AdapterRAM -Descending | "
            "ForEach-Object { $_.AdapterCompatibility + ' ' + $_.Name }",
        ],
        timeout=DETECTION_TIMEOUT_SECONDS,
    )
    if result is None or result.returncode != 0:
        logger.debug("Could not query Win32_VideoController.")
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def _get_gpu_names_macos(runner: Callable = run_cmd) -> List[str]:
    result = runner(["system_profiler", "SPDisplaysDataType"], timeout=DETECTION_TIMEOUT_SECONDS)
    if result is None or result.returncode != 0:
        return []
    return [
        line.split(":", 1)[1].strip()
        for line in result.stdout.splitlines()
        if line.strip().startswith(("Chipset Model:", "Vendor:"))
    ]


# --- Entry Point ---
def detect_hardware_profile(
    platform: str = sys.platform,
    machine: Optional[str] = None,
    runner: Callable = run_cmd,
) -> HardwareProfile:
    """
    Detects the GPU vendor and OS family.

    - macOS on arm64 is always Apple.
    - Windows and Linux ask `nvidia-smi` first, then the OS adapter list
      (WMI on Windows, `lspci` on Linux).
    - Intel macOS reads `system_profiler`.

    Args:
        platform: Value of `sys.platform` to detect for.
        machine: CPU architecture, e.g. "arm64". Defaults to `platform.machine()`.
        runner: Command runner with the `run_cmd` signature.

    Returns:
        The detected HardwareProfile.
    """
    family = os_family(platform)
    machine = (machine or platform_module.machine() or "").lower()

    if family == "macos" and machine in ("arm64", "aarch64"):
        profile = HardwareProfile(gpu_vendor=VENDOR_APPLE, os_family=family, gpu_names=("Apple Silicon",))
        logger.info(f"Detected hardware: {profile.gpu_vendor} GPU on {profile.os_family}.")
        return profile

    gpu_names: List[str] = []
    try:
        if family in ("windows", "linux"):
            gpu_names += _get_gpu_names_nvidia_smi(runner)
        if family == "windows":
            gpu_names += _get_gpu_names_windows(runner)
        elif family == "linux":
            gpu_names += _get_gpu_names_lspci(runner)
        elif family == "macos":
            gpu_names += _get_gpu_names_macos(runner)
    except Exception as e:
        logger.warning(f"GPU detection failed: {e}")

    profile = HardwareProfile(gpu_vendor=pick_vendor(gpu_names), os_family=family, gpu_names=tuple(gpu_names))
    logger.info(f"Detected hardware: {profile.gpu_vendor} GPU on {profile.os_family}.")
    if gpu_names:
        logger.debug(f"GPU adapters: {', '.join(gpu_names)}")
    return profile
