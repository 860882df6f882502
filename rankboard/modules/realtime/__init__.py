"""Realtime fan-out of leaderboard changes to connected clients."""

from rankboard.modules.realtime.hub import SCORE_UPDATED_MESSAGE_TYPE, ChannelHub

__all__ = ["ChannelHub", "SCORE_UPDATED_MESSAGE_TYPE"]
