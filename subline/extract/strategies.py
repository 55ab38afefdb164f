"""
subline.extract.strategies - Downloader strategy definitions.

A strategy is plain data: a name plus the extra arguments handed to the
downloader. The chain is tried in list order, so reordering or extending it
never touches control flow.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Strategy(BaseModel):
    """One way of asking the downloader for audio."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    args: tuple[str, ...] = ()


def player_client(name: str, client: str) -> Strategy:
    return Strategy(name=name, args=("--extractor-args", f"youtube:player_client={client}"))


def browser_cookies(name: str, browser: str) -> Strategy:
    return Strategy(name=name, args=("--cookies-from-browser", browser))


# Web client impersonation first; bare invocation last.
DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    player_client("web", "web"),
    browser_cookies("chrome-cookies", "chrome"),
    browser_cookies("firefox-cookies", "firefox"),
    player_client("ios", "ios"),
    player_client("android", "android"),
    player_client("tv", "tv"),
    Strategy(name="default"),
)
