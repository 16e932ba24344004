from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    query: str


@dataclass(frozen=True)
class TransientError:
    reason: str


FetchResult = Union[Ok[T], NotFound, TransientError]


@dataclass(frozen=True)
class AnimeState:
    display_title: str
    latest_episode: int
    reference_url: str

    @property
    def latest_progress(self) -> int:
        return self.latest_episode


@dataclass(frozen=True)
class MangaState:
    display_title: str
    latest_chapter: float
    reference_url: str
    language: str = "en"

    @property
    def latest_progress(self) -> float:
        return self.latest_chapter


class _Unavailable:
    """Marker for a streaming-link source that produced nothing this time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()


__all__ = [
    "AnimeState",
    "FetchResult",
    "MangaState",
    "NotFound",
    "Ok",
    "TransientError",
    "UNAVAILABLE",
    "_Unavailable",
]
