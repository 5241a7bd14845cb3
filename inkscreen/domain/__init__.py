"""Domain model and layout composition for screen designs."""
