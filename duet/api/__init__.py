"""HTTP surface for Duet."""
