"""Shared infrastructure for mobile development tooling.

  * ``requirements``: ordered, async prerequisite checks per platform
  * ``device``: Android emulator / iOS simulator lifecycle and certificate trust
  * ``runtime``: adb/emulator, SDK manifest and simctl wrappers
  * ``common``: versions, certificate codec, command channel, polling helpers
"""

__version__ = "0.1.0"
