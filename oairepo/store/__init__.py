"""Record source and resumption token persistence."""
