"""
Instance classifier.

Maps one remote name to the backup instance it belongs to. A name belongs to
a job when it starts with the archive base name and the base name is not
continued by a letter: 'Job [2025-07-05].7z' and 'Job2025-07-05.7z' belong to
base 'Job', 'JobArchive [2025-07-05].7z' does not. Whatever sits between the
base name and the extension (the date stamp of the run) is part of the
instance key, so 'Job [2025-07-05].7z.001' and
'Job [2025-07-05].7z.manifest.sha256' share the key 'Job [2025-07-05].7z'.

Rules are tried in order and the first match wins:

1. <base>...<ext>.NNN            split volume part      key <base>...<ext>
2. <base>...<ext>.manifest.ALGO  manifest                key <base>...<ext>
3. <base>....X.manifest.ALGO     manifest of SFX/other   key <base>....X
4. <base>...<ext>                single primary file     key = name
5. <base>....X                   SFX/alternate primary   key = name
6. <base>*                       heuristic fallback      key <base> + suffix

X is an extension with at least one letter ('exe', '7z'); digit-only
suffixes are volume numbers and never form an alternate primary.
"""

import re
from functools import lru_cache
from pathlib import PurePosixPath
from typing import NamedTuple, Optional, Pattern

from .runlog import RunLog
from .types import ArchiveMatchSpec, Classification, RemoteEntry, Role


_ALGO = r'(?P<algo>[A-Za-z0-9_-]+)'
_ANY_EXT = r'[A-Za-z0-9]*[A-Za-z][A-Za-z0-9]*'
_MANIFEST_TAIL = re.compile(r'\.manifest\.[A-Za-z0-9_-]+$')


class _Patterns(NamedTuple):
    volume: Pattern
    manifest: Pattern
    alt_manifest: Pattern
    primary: Pattern
    alt_primary: Pattern


@lru_cache(maxsize=64)
def _compile(spec: ArchiveMatchSpec) -> _Patterns:
    base = re.escape(spec.base_name)
    ext = re.escape(spec.primary_extension)
    return _Patterns(
        volume=re.compile(rf'(?P<key>{base}.*?{ext})\.(?P<part>\d{{3,}})', re.DOTALL),
        manifest=re.compile(rf'(?P<key>{base}.*?{ext})\.manifest\.{_ALGO}', re.DOTALL),
        alt_manifest=re.compile(rf'(?P<key>{base}.*\.{_ANY_EXT})\.manifest\.{_ALGO}', re.DOTALL),
        primary=re.compile(rf'{base}.*{ext}', re.DOTALL),
        alt_primary=re.compile(rf'{base}.*\.(?P<ext>{_ANY_EXT})', re.DOTALL),
    )


def belongs_to(name: str, base_name: str) -> bool:
    """True if name starts with base_name and does not extend its last word."""
    if not name.startswith(base_name):
        return False
    rest = name[len(base_name):]
    return not rest or not base_name[-1].isalnum() or not rest[0].isalpha()


def classify_name(name: str, spec: ArchiveMatchSpec) -> Optional[Classification]:
    """
    Classify a bare name against a match spec.

    Returns:
        Classification, or None if the name does not belong to the job
    """
    if not belongs_to(name, spec.base_name):
        return None

    patterns = _compile(spec)

    match = patterns.volume.fullmatch(name)
    if match:
        return Classification(match.group('key'), Role.VOLUME, match.group('part'))

    match = patterns.manifest.fullmatch(name)
    if match:
        return Classification(match.group('key'), Role.MANIFEST)

    match = patterns.alt_manifest.fullmatch(name)
    if match:
        return Classification(match.group('key'), Role.MANIFEST)

    if patterns.primary.fullmatch(name):
        return Classification(name, Role.PRIMARY)

    # A manifest whose archive name has no extension stays out of rule 5
    match = patterns.alt_primary.fullmatch(name)
    if (match and not _MANIFEST_TAIL.search(name)
            and '.' + match.group('ext').lower() != spec.primary_extension.lower()):
        return Classification(name, Role.SFX)

    suffix = PurePosixPath(name).suffix
    return Classification(spec.base_name + suffix, Role.HEURISTIC)


def classify(entry: RemoteEntry, spec: ArchiveMatchSpec, run_log: Optional[RunLog] = None) -> Optional[Classification]:
    """Classify a listed entry. Heuristic matches are reported at DEBUG."""
    result = classify_name(entry.name, spec)
    if result is not None and result.role is Role.HEURISTIC and run_log is not None:
        run_log.debug(
            f"'{entry.name}' only matches the base name prefix; heuristic instance key '{result.key}'"
        )
    return result


def is_first_volume(classification: Classification) -> bool:
    return classification.role is Role.VOLUME and int(classification.part) == 1
