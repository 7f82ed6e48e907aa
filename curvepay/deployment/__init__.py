"""
Bonding curve deployment for new songs
"""

from curvepay.deployment.initiator import DeploymentInitiator, extract_token_address

__all__ = ["DeploymentInitiator", "extract_token_address"]
