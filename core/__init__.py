"""Face matching and attendance recording engine."""
