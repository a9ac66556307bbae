from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from s3knife.filesystem import File


def _normalize_pattern(pattern: str) -> str:
    normalized = pattern.strip().replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def _match_pattern(relative_path: str, pattern: str) -> bool:
    if not pattern:
        return False
    if pattern.endswith("/"):
        return relative_path.startswith(pattern)
    path_obj = PurePosixPath(relative_path)
    # Patterns match anchored at the root or at any depth.
    return path_obj.match(pattern) or path_obj.match(f"**/{pattern}")


@dataclass(slots=True)
class PathFilter:
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        return bool(self.include_patterns or self.exclude_patterns)

    def matches(self, relative_path: str) -> bool:
        if self.include_patterns and not any(
            _match_pattern(relative_path, pattern) for pattern in self.include_patterns
        ):
            return False
        return not any(_match_pattern(relative_path, pattern) for pattern in self.exclude_patterns)

    def apply(self, files: Iterable[File]) -> Iterator[File]:
        """Drop filtered entries from a listing; the order of the rest is kept."""
        if not self.active:
            yield from files
            return
        for file in files:
            if self.matches(file.relative):
                yield file


def build_path_filter(
    include_patterns: Iterable[str] | None = None,
    exclude_patterns: Iterable[str] | None = None,
) -> PathFilter:
    include = tuple(_normalize_pattern(p) for p in (include_patterns or ()) if p.strip())
    exclude = tuple(_normalize_pattern(p) for p in (exclude_patterns or ()) if p.strip())
    return PathFilter(include_patterns=include, exclude_patterns=exclude)
