"""Duet: a two-speaker conversation engine that talks about a rotating feed."""
