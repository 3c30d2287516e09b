"""Host architecture → OpenList release artifact suffix."""

import logging
import platform

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = "linux-musl-amd64"

# Keys are `uname -m` values, the arch identifiers offered in the settings
# page, and the release suffixes themselves (identity).
ARCH_MAP: dict[str, str] = {
    # uname -m
    'x86_64': "linux-musl-amd64",
    'amd64': "linux-musl-amd64",
    'aarch64': "linux-musl-arm64",
    'arm64': "linux-musl-arm64",
    'armv7l': "linux-musleabihf-armv7l",
    'armv6l': "linux-musleabihf-armv6",
    'armv5tel': "linux-musleabihf-armv5",
    'i386': "linux-musl-386",
    'i686': "linux-musl-386",
    'mips': "linux-musl-mips",
    'mipsel': "linux-musl-mipsle",
    'mips64': "linux-musl-mips64",
    'mips64el': "linux-musl-mips64le",
    'loongarch64': "linux-musl-loong64",
    'riscv64': "linux-musl-riscv64",

    # Settings page selections
    'linux-386': "linux-musl-386",
    'linux-amd64': "linux-musl-amd64",
    'linux-amd64-v3': "linux-musl-amd64",
    'linux-armv5': "linux-musleabihf-armv5",
    'linux-armv6': "linux-musleabihf-armv6",
    'linux-armv7': "linux-musleabihf-armv7l",
    'linux-arm64': "linux-musl-arm64",
    'linux-loong64': "linux-musl-loong64",
    'linux-riscv64': "linux-musl-riscv64",
    'linux-mips': "linux-musl-mips",
    'linux-mips64': "linux-musl-mips64",
    'linux-mips64le': "linux-musl-mips64le",
    'linux-mipsle': "linux-musl-mipsle",
}
for _suffix in set(ARCH_MAP.values()):
    ARCH_MAP.setdefault(_suffix, _suffix)

_DISPLAY_NAMES = {
    'amd64': "x86_64 (64-bit)",
    '386': "x86 (32-bit)",
    'arm64': "ARM64 (aarch64)",
    'armv7l': "ARMv7 (hard-float)",
    'armv6': "ARMv6 (hard-float)",
    'armv5': "ARMv5 (hard-float)",
    'mips': "MIPS (Big Endian)",
    'mipsle': "MIPS (Little Endian)",
    'mips64': "MIPS64 (Big Endian)",
    'mips64le': "MIPS64 (Little Endian)",
    'loong64': "LoongArch64",
    'riscv64': "RISC-V 64",
}


def map_arch(host_arch: str | None) -> str:
    """Map an architecture identifier to a release suffix.

    Never fails: unknown values fall back to ``linux-musl-amd64``.
    """
    key = (host_arch or '').strip()
    mapped = ARCH_MAP.get(key) or ARCH_MAP.get(key.lower())
    if mapped:
        logger.debug("Mapped architecture %s -> %s", key, mapped)
        return mapped
    logger.warning("Unknown architecture %r, using fallback %s", key, DEFAULT_SUFFIX)
    return DEFAULT_SUFFIX


def detect_host_arch() -> str:
    """Return ``uname -m`` of the running host."""
    return platform.machine()


def arch_display_name(suffix: str | None) -> str:
    if not suffix:
        return "Unknown (Detection Failed)"
    cpu = suffix.rsplit('-', 1)[-1]
    return _DISPLAY_NAMES.get(cpu, f"{cpu} (Unknown)")
