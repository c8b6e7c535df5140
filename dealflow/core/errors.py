from __future__ import annotations


class CommandRejected(ValueError):
    """A business rule declined the command; `reason` is shown to the player."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
