"""Input contract and file loading."""
