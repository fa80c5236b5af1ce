"""Network, supervisor and statistics services used by platforms."""
