"""iOS simulator helpers built on ``xcrun simctl``."""
