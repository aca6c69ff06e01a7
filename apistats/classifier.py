"""Decide which requests are counted."""

from __future__ import annotations

from collections.abc import Callable

PathFilter = Callable[[str | None], bool]

DEFAULT_PATH_PREFIX = "/api/"


def prefix_path_filter(prefix: str = DEFAULT_PATH_PREFIX) -> PathFilter:
    """Return a predicate accepting paths that start with `prefix`."""

    def _matches(path: str | None) -> bool:
        return path is not None and path.startswith(prefix)

    return _matches


class RequestClassifier:
    """Path-based scope check shared by the IP and user-agent counters."""

    def __init__(
        self,
        path_filter: PathFilter | None = None,
        *,
        prefix: str = DEFAULT_PATH_PREFIX,
    ) -> None:
        self._path_filter = path_filter or prefix_path_filter(prefix)

    def classify(self, path: str | None) -> bool:
        if path is None:
            return False
        return bool(self._path_filter(path))

    __call__ = classify
