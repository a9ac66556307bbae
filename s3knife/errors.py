from __future__ import annotations


class KnifeError(Exception):
    """Base class for errors raised by s3knife itself."""


class ConfigError(KnifeError, ValueError):
    """Invalid options or configuration, rejected before any I/O."""


class LocatorError(ConfigError):
    """A root locator could not be parsed."""


class ListingError(KnifeError):
    """Enumerating a root failed part-way through."""

    def __init__(self, root: str, cause: BaseException) -> None:
        super().__init__(f"{root}: {cause}")
        self.root = root
        self.cause = cause


class BatchDeleteError(KnifeError):
    """A bulk delete call reported per-key failures."""

    def __init__(self, bucket: str, errors: list[dict]) -> None:
        first = errors[0] if errors else {}
        super().__init__(
            f"{len(errors)} key(s) in {bucket} not deleted, "
            f"first: {first.get('Key')} ({first.get('Code')}: {first.get('Message')})"
        )
        self.bucket = bucket
        self.errors = errors


class UnsafePathError(KnifeError):
    """A relative path would land outside its filesystem root."""

    def __init__(self, root: str, relative: str) -> None:
        super().__init__(f"{relative!r} escapes {root}")
        self.root = root
        self.relative = relative
