"""Finch is a framework for Telegram bots."""

__version__ = "0.3.0"
