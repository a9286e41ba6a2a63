"""HTTP surface of the servermon pipeline."""
