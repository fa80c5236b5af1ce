"""Block device resolution, partitioning and mounting."""
