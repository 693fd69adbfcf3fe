"""Simulations of distributed algorithms: Raft leader election, operational transformation, gossip counting and Chord routing."""

__version__ = "0.2.0"
__all__ = ["raft", "editor", "counter", "gossip", "chord", "chord_system"]