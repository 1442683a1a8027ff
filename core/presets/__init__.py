"""
Sound presets: clip decoding and the preset catalog.
"""

from .clips import (
    SoundClip,
    ClipError,
    prepare_audio,
    load_wav,
    synthesize
)

from .catalog import (
    SoundPreset,
    PresetCatalog,
    BUNDLED_PRESETS,
    load_all,
    load_file,
    parse_presets
)

__all__ = [
    'SoundClip',
    'ClipError',
    'prepare_audio',
    'load_wav',
    'synthesize',
    'SoundPreset',
    'PresetCatalog',
    'BUNDLED_PRESETS',
    'load_all',
    'load_file',
    'parse_presets',
]
