"""
Preset catalog: named mappings from key categories to sound clips.

Presets are TOML documents:

    [[preset]]
    name = "default"
    strategy = "sequential"        # or "random"

    [preset.press]                 # required, every category non-empty
    alphanumeric = [{ synth = "click", seed = 1 }, { path = "key2.wav" }]
    ...

    [preset.release]               # optional, missing/empty = silent
    enter = [{ synth = "thunk", volume = 0.5 }]

Everything is decoded eagerly. Any problem raises CatalogLoadFailed while
the catalog is being built, never during playback.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from core.errors import CatalogLoadFailed, UnknownPreset
from core.keys.classifier import KeyCategory
from utils.events import Transition
from utils.metrics import timer
from .clips import SoundClip, load_wav, synthesize

logger = logging.getLogger(__name__)

BUNDLED_PRESETS = Path(__file__).parent / "presets.toml"

STRATEGIES = ("sequential", "random")

ClipTable = Mapping[KeyCategory, Tuple[SoundClip, ...]]


@dataclass(frozen=True)
class SoundPreset:
    """A named, complete key-category to clip mapping."""
    name: str
    press: ClipTable
    release: ClipTable
    strategy: str = "sequential"

    def clips_for(self, category: KeyCategory, transition: Transition) -> Tuple[SoundClip, ...]:
        """Candidate clips for a category; empty tuple means silent."""
        table = self.press if transition is Transition.PRESS else self.release
        return table.get(category, ())


def _parse_clip(entry: Any, where: str, base_dir: Path,
                sample_rate: int, channels: int) -> SoundClip:
    if not isinstance(entry, dict):
        raise CatalogLoadFailed(f"{where}: clip entry must be a table, got {type(entry).__name__}")

    try:
        volume = float(entry.get("volume", 1.0))
    except (TypeError, ValueError):
        raise CatalogLoadFailed(f"{where}: volume must be a number")
    if not 0.0 <= volume <= 2.0:
        raise CatalogLoadFailed(f"{where}: volume {volume} out of range 0..2")

    has_path = "path" in entry
    has_synth = "synth" in entry
    if has_path == has_synth:
        raise CatalogLoadFailed(f"{where}: clip needs exactly one of 'path' or 'synth'")

    try:
        if has_path:
            path = Path(str(entry["path"]))
            if not path.is_absolute():
                path = base_dir / path
            samples = load_wav(path, sample_rate, channels)
            name = path.name
        else:
            kind = str(entry["synth"])
            params = {k: v for k, v in entry.items() if k not in ("synth", "volume")}
            samples = synthesize(kind, sample_rate, channels, params)
            name = f"{kind}#{params.get('seed', 0)}"
    except Exception as e:
        raise CatalogLoadFailed(f"{where}: cannot decode clip: {e}") from e

    return SoundClip(name=name, samples=samples, sample_rate=sample_rate, volume=volume)


def _parse_table(raw: Any, where: str, base_dir: Path, sample_rate: int,
                 channels: int, required: bool) -> Dict[KeyCategory, Tuple[SoundClip, ...]]:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise CatalogLoadFailed(f"{where}: must be a table of categories")

    by_name = {c.value: c for c in KeyCategory}
    table: Dict[KeyCategory, Tuple[SoundClip, ...]] = {}
    for key, entries in raw.items():
        category = by_name.get(str(key).lower())
        if category is None:
            raise CatalogLoadFailed(f"{where}: unknown key category {key!r}")
        if not isinstance(entries, list):
            raise CatalogLoadFailed(f"{where}.{key}: must be a list of clips")
        table[category] = tuple(
            _parse_clip(e, f"{where}.{key}[{i}]", base_dir, sample_rate, channels)
            for i, e in enumerate(entries)
        )

    if required:
        missing = [c.value for c in KeyCategory if not table.get(c)]
        if missing:
            raise CatalogLoadFailed(f"{where}: no clips for categories {missing}")
    return table


def parse_presets(document: Mapping[str, Any], base_dir: Path, sample_rate: int,
                  channels: int, source: str = "<presets>") -> List[SoundPreset]:
    """Build presets from an already-parsed TOML document."""
    raw_presets = document.get("preset", [])
    if not isinstance(raw_presets, list):
        raise CatalogLoadFailed(f"{source}: 'preset' must be an array of tables")

    presets = []
    for i, raw in enumerate(raw_presets):
        if not isinstance(raw, dict):
            raise CatalogLoadFailed(f"{source}: preset[{i}] must be a table")
        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            raise CatalogLoadFailed(f"{source}: preset[{i}] has no name")
        where = f"{source}:{name}"

        strategy = str(raw.get("strategy", "sequential")).lower()
        if strategy not in STRATEGIES:
            raise CatalogLoadFailed(f"{where}: unknown strategy {strategy!r}")

        press = _parse_table(raw.get("press"), f"{where}.press", base_dir,
                             sample_rate, channels, required=True)
        release = _parse_table(raw.get("release"), f"{where}.release", base_dir,
                               sample_rate, channels, required=False)
        presets.append(SoundPreset(name=name, press=press, release=release, strategy=strategy))
    return presets


def load_file(path: Union[str, Path], sample_rate: int, channels: int) -> List[SoundPreset]:
    """Load every preset defined in one TOML file."""
    path = Path(path)
    try:
        with open(path, "rb") as f:
            document = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise CatalogLoadFailed(f"Cannot read preset file {path}: {e}") from e
    return parse_presets(document, path.parent, sample_rate, channels, source=path.name)


def load_all(extra_paths: Iterable[Union[str, Path]] = (),
             sample_rate: int = 44100, channels: int = 2,
             include_bundled: bool = True) -> List[SoundPreset]:
    """
    Load bundled presets followed by user preset files.

    Returns:
        Presets in load order

    Raises:
        CatalogLoadFailed: on any malformed preset, undecodable clip,
            duplicate name, or when no preset is defined at all
    """
    paths: List[Path] = [BUNDLED_PRESETS] if include_bundled else []
    paths.extend(Path(p) for p in extra_paths)

    presets: List[SoundPreset] = []
    seen = set()
    with timer("catalog_load"):
        for path in paths:
            for preset in load_file(path, sample_rate, channels):
                if preset.name in seen:
                    raise CatalogLoadFailed(f"Duplicate preset name {preset.name!r} in {path}")
                seen.add(preset.name)
                presets.append(preset)
            logger.debug(f"Loaded presets from {path}")

    if not presets:
        raise CatalogLoadFailed("No sound presets defined")
    logger.info(f"Loaded {len(presets)} sound presets")
    return presets


class PresetCatalog:
    """Read-only, ordered collection of presets."""

    def __init__(self, presets: Sequence[SoundPreset]):
        if not presets:
            raise CatalogLoadFailed("No sound presets defined")
        self._presets: Tuple[SoundPreset, ...] = tuple(presets)

    @classmethod
    def load(cls, extra_paths: Iterable[Union[str, Path]] = (),
             sample_rate: int = 44100, channels: int = 2) -> 'PresetCatalog':
        return cls(load_all(extra_paths, sample_rate=sample_rate, channels=channels))

    def load_all(self) -> Tuple[SoundPreset, ...]:
        return self._presets

    def names(self) -> List[str]:
        return [p.name for p in self._presets]

    def find(self, name: str) -> SoundPreset:
        for preset in self._presets:
            if preset.name == name:
                return preset
        raise UnknownPreset(name)

    def get(self, name: str) -> Optional[SoundPreset]:
        try:
            return self.find(name)
        except UnknownPreset:
            return None

    def __iter__(self) -> Iterator[SoundPreset]:
        return iter(self._presets)

    def __len__(self) -> int:
        return len(self._presets)
