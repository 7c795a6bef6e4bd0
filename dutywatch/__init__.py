"""Duty session tracking and Roblox identity verification service."""

__version__ = "0.1.0"
