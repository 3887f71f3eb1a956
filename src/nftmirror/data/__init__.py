"""Data layer: entity models, store interface and store backends."""
