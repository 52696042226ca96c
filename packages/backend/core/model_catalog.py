"""Curated model catalog for local LLM inference.

Defines the GGUF models the gateway knows how to fetch and run, grouped by
hardware tier. Download sources are HuggingFace repos; entries without a
repo must be placed in the models directory by hand.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import IntEnum

from huggingface_hub import hf_hub_url

MODEL_EXTENSION = ".gguf"


class Tier(IntEnum):
    """Hardware capability tier, ordered cpu < basic < mid < high < ultra < apex."""

    CPU = 0
    BASIC = 1
    MID = 2
    HIGH = 3
    ULTRA = 4
    APEX = 5

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "Tier | str") -> "Tier":
        """Parse a tier label ("cpu", "mid", ...). "none" is an alias for cpu."""
        if isinstance(value, Tier):
            return value
        key = value.strip().lower()
        if key == "none":
            return cls.CPU
        try:
            return cls[key.upper()]
        except KeyError:
            raise ValueError(f"Unknown tier: {value!r}") from None


@dataclass(frozen=True)
class CatalogEntry:
    """A downloadable model definition."""

    name: str
    display_name: str
    filename: str
    size_bytes: int
    min_ram_mb: int
    tier: Tier
    architecture: str
    description: str
    repo: str | None = None  # HuggingFace repo id; None = manual install only

    @property
    def size_gb(self) -> float:
        return self.size_bytes / 1_000_000_000

    @property
    def stem(self) -> str:
        return strip_extension(self.filename)

    @property
    def source_url(self) -> str | None:
        """Direct download URL, or None when the model has no known source."""
        if not self.repo:
            return None
        return hf_hub_url(repo_id=self.repo, filename=self.filename)


def strip_extension(filename: str) -> str:
    """Drop the model file extension, if present."""
    if filename.endswith(MODEL_EXTENSION):
        return filename[: -len(MODEL_EXTENSION)]
    return filename


# Declaration order matters: the first entry of a tier is its recommendation.
MODEL_CATALOG: tuple[CatalogEntry, ...] = (
    # Lightweight (CPU-only)
    CatalogEntry(
        name="qwen2.5:0.5b",
        display_name="Qwen 2.5 0.5B",
        filename="qwen2.5-0.5b-instruct-q4_k_m.gguf",
        size_bytes=491_400_032,
        min_ram_mb=2048,
        tier=Tier.CPU,
        architecture="qwen2",
        description="Tiny model for basic Q&A, runs on anything",
        repo="Qwen/Qwen2.5-0.5B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="phi3.5:mini",
        display_name="Phi-3.5 Mini",
        filename="Phi-3.5-mini-instruct-Q4_K_M.gguf",
        size_bytes=2_393_232_672,
        min_ram_mb=4096,
        tier=Tier.CPU,
        architecture="phi3",
        description="Microsoft's compact model, good reasoning",
        repo="bartowski/Phi-3.5-mini-instruct-GGUF",
    ),
    CatalogEntry(
        name="rwkv7-2.9B",
        display_name="RWKV-7 2.9B",
        filename="rwkv7-2.9B.gguf",
        size_bytes=2_900_000_000,
        min_ram_mb=4096,
        tier=Tier.CPU,
        architecture="rwkv",
        description="Recurrent model with constant memory use, fast on CPU",
    ),
    # Basic (4-8GB GPU)
    CatalogEntry(
        name="qwen2.5:3b",
        display_name="Qwen 2.5 3B",
        filename="Qwen2.5-3B-Instruct-Q4_K_M.gguf",
        size_bytes=1_929_903_264,
        min_ram_mb=4096,
        tier=Tier.BASIC,
        architecture="qwen2",
        description="Solid for chat and simple coding",
        repo="bartowski/Qwen2.5-3B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="llama3.2:3b",
        display_name="Llama 3.2 3B",
        filename="Llama-3.2-3B-Instruct-Q4_K_M.gguf",
        size_bytes=2_019_377_696,
        min_ram_mb=4096,
        tier=Tier.BASIC,
        architecture="llama",
        description="Meta's compact model, versatile",
        repo="bartowski/Llama-3.2-3B-Instruct-GGUF",
    ),
    # Mid (8-16GB GPU)
    CatalogEntry(
        name="qwen2.5:7b",
        display_name="Qwen 2.5 7B",
        filename="Qwen2.5-7B-Instruct-Q4_K_M.gguf",
        size_bytes=4_683_073_856,
        min_ram_mb=8192,
        tier=Tier.MID,
        architecture="qwen2",
        description="Great all-around model for most tasks",
        repo="bartowski/Qwen2.5-7B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="llama3.1:8b",
        display_name="Llama 3.1 8B",
        filename="Meta-Llama-3.1-8B-Instruct-Q4_K_M.gguf",
        size_bytes=4_920_734_016,
        min_ram_mb=8192,
        tier=Tier.MID,
        architecture="llama",
        description="Meta's balanced model, strong coding",
        repo="bartowski/Meta-Llama-3.1-8B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="deepseek-r1:7b",
        display_name="DeepSeek R1 7B",
        filename="DeepSeek-R1-Distill-Qwen-7B-Q4_K_M.gguf",
        size_bytes=4_683_073_504,
        min_ram_mb=8192,
        tier=Tier.MID,
        architecture="qwen2",
        description="Deep reasoning and chain-of-thought",
        repo="bartowski/DeepSeek-R1-Distill-Qwen-7B-GGUF",
    ),
    # High (16-24GB GPU)
    CatalogEntry(
        name="qwen2.5:14b",
        display_name="Qwen 2.5 14B",
        filename="Qwen2.5-14B-Instruct-Q4_K_M.gguf",
        size_bytes=8_988_110_976,
        min_ram_mb=16384,
        tier=Tier.HIGH,
        architecture="qwen2",
        description="Strong for coding, analysis, and writing",
        repo="bartowski/Qwen2.5-14B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="deepseek-r1:14b",
        display_name="DeepSeek R1 14B",
        filename="DeepSeek-R1-Distill-Qwen-14B-Q4_K_M.gguf",
        size_bytes=8_988_110_656,
        min_ram_mb=16384,
        tier=Tier.HIGH,
        architecture="qwen2",
        description="Excellent reasoning capabilities",
        repo="bartowski/DeepSeek-R1-Distill-Qwen-14B-GGUF",
    ),
    # Ultra (24GB+ GPU)
    CatalogEntry(
        name="qwen2.5:32b",
        display_name="Qwen 2.5 32B",
        filename="Qwen2.5-32B-Instruct-Q4_K_M.gguf",
        size_bytes=19_851_335_840,
        min_ram_mb=24576,
        tier=Tier.ULTRA,
        architecture="qwen2",
        description="Near-frontier performance locally",
        repo="bartowski/Qwen2.5-32B-Instruct-GGUF",
    ),
    CatalogEntry(
        name="deepseek-r1:32b",
        display_name="DeepSeek R1 32B",
        filename="DeepSeek-R1-Distill-Qwen-32B-Q4_K_M.gguf",
        size_bytes=19_851_336_384,
        min_ram_mb=24576,
        tier=Tier.ULTRA,
        architecture="qwen2",
        description="Top-tier local reasoning",
        repo="bartowski/DeepSeek-R1-Distill-Qwen-32B-GGUF",
    ),
    # Apex (64GB+ unified memory)
    CatalogEntry(
        name="llama3.1:70b",
        display_name="Llama 3.1 70B",
        filename="Meta-Llama-3.1-70B-Instruct-Q4_K_M.gguf",
        size_bytes=42_520_395_584,
        min_ram_mb=49152,
        tier=Tier.APEX,
        architecture="llama",
        description="Massive model, needs 48GB+ VRAM",
        repo="bartowski/Meta-Llama-3.1-70B-Instruct-GGUF",
    ),
)


def entries_for_tier(
    tier: Tier | str,
    catalog: Iterable[CatalogEntry] = MODEL_CATALOG,
) -> list[CatalogEntry]:
    """Return every entry that runs on the given tier (entry tier <= tier)."""
    max_tier = Tier.parse(tier)
    return [entry for entry in catalog if entry.tier <= max_tier]


# Ordered match strategies: exact canonical name, then filename (with or
# without extension) for callers that pass what they see on disk.
_MATCH_STRATEGIES = (
    lambda entry, name: entry.name == name,
    lambda entry, name: name in (entry.filename, entry.stem),
)


def find_by_name(
    name: str,
    catalog: Iterable[CatalogEntry] = MODEL_CATALOG,
) -> CatalogEntry | None:
    """Look up a catalog entry by name. Returns None when nothing matches."""
    entries = tuple(catalog)
    for matches in _MATCH_STRATEGIES:
        for entry in entries:
            if matches(entry, name):
                return entry
    return None
