from __future__ import annotations

from typing import Mapping

from ..models.common import format_progress
from ..strings import S
from ..utils.results import AnimeState, MangaState

__all__ = ["anime_body", "compose_message", "manga_body"]

MAX_MESSAGE_LEN = 2000


def anime_body(state: AnimeState, links: Mapping[str, object]) -> str:
    lines = [S("notify.anime.body", progress=state.latest_episode, url=state.reference_url)]
    if links:
        lines.append(S("notify.links.header"))
        for source, url in links.items():
            if url:
                lines.append(S("notify.links.line", source=source, url=url))
            else:
                lines.append(S("notify.links.unavailable", source=source))
    return "\n".join(lines)


def manga_body(state: MangaState) -> str:
    return S(
        "notify.manga.body",
        progress=format_progress(state.latest_chapter),
        url=state.reference_url,
    )


def compose_message(subscriber_id: str, kind: str, title: str, body: str) -> str:
    header = S("notify.header", mention=f"<@{subscriber_id}>", kind=kind, title=title)
    content = f"{header}\n{body}" if body else header
    if len(content) > MAX_MESSAGE_LEN:
        content = content[: MAX_MESSAGE_LEN - 1] + "…"
    return content
