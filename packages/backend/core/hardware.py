"""Hardware tier selection.

The hardware profile itself is produced by the host inventory probe; this
module only maps it onto a capability tier and picks a catalog model.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from .model_catalog import MODEL_CATALOG, CatalogEntry, Tier

# GPU types whose accelerator shares system memory
UNIFIED_MEMORY_GPUS = frozenset({"apple_silicon"})

# Minimum accelerator memory (GB) per tier, checked from the top down
_TIER_THRESHOLDS_GB: tuple[tuple[int, Tier], ...] = (
    (64, Tier.APEX),
    (24, Tier.ULTRA),
    (16, Tier.HIGH),
    (8, Tier.MID),
    (4, Tier.BASIC),
)

TIER_BLURBS: dict[Tier, str] = {
    Tier.APEX: "Flagship model — runs the biggest open models with room to spare",
    Tier.ULTRA: "Large model — excellent for coding, analysis, and complex reasoning",
    Tier.HIGH: "Strong model — great for most tasks including code and writing",
    Tier.MID: "Medium model — solid for general use, chat, and basic coding",
    Tier.BASIC: "Compact model — good for chat and simple tasks",
    Tier.CPU: "Lightweight model — runs on CPU, good for basic Q&A and chat",
}


@dataclass(frozen=True)
class HardwareProfile:
    """Detected host hardware."""

    os: str = ""
    arch: str = ""
    cpu_model: str = ""
    cpu_cores: int = 0
    ram_total_mb: int = 0
    disk_total_gb: int = 0
    disk_free_gb: int = 0
    gpu_type: str = "none"  # nvidia, amd, apple_silicon, intel_arc, none
    gpu_name: str = ""
    gpu_memory_mb: int = 0

    @property
    def accelerator_memory_mb(self) -> int:
        """Memory usable for model weights on the accelerator."""
        if self.gpu_type in UNIFIED_MEMORY_GPUS:
            return max(self.gpu_memory_mb, self.ram_total_mb)
        return self.gpu_memory_mb


def tier_for_profile(profile: HardwareProfile) -> Tier:
    """Map a hardware profile onto a capability tier."""
    if not profile.gpu_type or profile.gpu_type == "none":
        return Tier.CPU

    mem_gb = profile.accelerator_memory_mb // 1024
    for threshold, tier in _TIER_THRESHOLDS_GB:
        if mem_gb >= threshold:
            return tier
    return Tier.CPU


def recommended_entry(
    profile: HardwareProfile,
    catalog: Iterable[CatalogEntry] = MODEL_CATALOG,
) -> CatalogEntry | None:
    """Pick the first catalog entry declared for the profile's tier.

    Falls back to the highest lower tier with an entry when the exact
    tier is empty.
    """
    entries = tuple(catalog)
    tier = tier_for_profile(profile)
    for candidate in sorted(Tier, reverse=True):
        if candidate > tier:
            continue
        for entry in entries:
            if entry.tier == candidate:
                return entry
    return None


def recommended_model(
    profile: HardwareProfile,
    catalog: Iterable[CatalogEntry] = MODEL_CATALOG,
) -> str | None:
    """Name of the recommended model, or None for an empty catalog."""
    entry = recommended_entry(profile, catalog)
    return entry.name if entry else None


def recommended_model_description(
    profile: HardwareProfile,
    catalog: Iterable[CatalogEntry] = MODEL_CATALOG,
) -> str:
    """Human-readable recommendation: "<model> — <tier blurb>"."""
    tier = tier_for_profile(profile)
    model = recommended_model(profile, catalog) or "no model"
    return f"{model} — {TIER_BLURBS[tier]}"
