"""Agent configuration: platform options and directory layout."""
