"""Specification helpers: contract markers, logic helpers, protocol state machines, abstract crypto and a snapshot harness."""

__version__ = "0.1.0"