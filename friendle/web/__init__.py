"""Storage service for generated puzzles and engagement counters."""
