"""
zkvip - balance-gated group membership with zero-knowledge proofs.

Users prove that their token balance meets a group's minimum without
revealing the balance itself; a valid proof is what moves a group from
"available" to "joined" in the local group store.
"""

__version__ = "0.1.0"
