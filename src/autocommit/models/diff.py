"""Diff snapshot model."""

from pydantic import BaseModel

DIFF_CHAR_LIMIT = 1500


class DiffSnapshot(BaseModel):
    """Bounded text of a working-tree diff."""

    text: str
    length: int
    truncated: bool = False

    @classmethod
    def from_text(cls, text: str, limit: int = DIFF_CHAR_LIMIT) -> "DiffSnapshot":
        """Build a snapshot, cutting ``text`` to at most ``limit`` characters."""
        if len(text) > limit:
            clipped = text[:limit]
            return cls(text=clipped, length=len(clipped), truncated=True)
        return cls(text=text, length=len(text))


class Clean(BaseModel):
    """The working tree has nothing to commit."""
