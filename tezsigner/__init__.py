"""Signing policy, high-watermark protection, policy hook replies and key handling for a Tezos remote signer."""

__version__ = "0.1.0"