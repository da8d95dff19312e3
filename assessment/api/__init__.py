"""HTTP surface for the interview engine."""
