"""4K memory model."""
