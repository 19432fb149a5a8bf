"""HTTP surface of the trajectory engine."""
