"""Multichat - unified live chat feed for Twitch, YouTube and TikTok."""

__version__ = "0.1.0"
