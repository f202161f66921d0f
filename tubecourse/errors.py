"""Resolution errors. Each carries a message suitable for showing to the user."""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for everything the resolution engine raises."""

    user_message = "Something went wrong"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class InvalidReference(ResolutionError):
    """Input is neither a recognizable video nor a playlist."""

    user_message = "Invalid YouTube URL"


class PlaylistExpansionFailed(ResolutionError):
    """Every playlist strategy came back empty and no seed id was available."""

    user_message = "Failed to fetch playlist. Try adding videos individually."


class NoItemsResolved(ResolutionError):
    """Ids were found but none of them produced a course item."""

    user_message = "No videos found"


class TransportError(ResolutionError):
    """Network failure, timeout or non-2xx response. Always local to one stage."""

    user_message = "Failed to fetch video information"


class MetadataUnavailable(ResolutionError):
    """A metadata stage returned a payload it could not use."""

    user_message = "Failed to parse response"
