"""
Mutation gateway and consistency policies.
"""

from client_portal.gateway.mutations import MUTATION_POLICIES, ConsistencyPolicy, MutationGateway

__all__ = ["MUTATION_POLICIES", "ConsistencyPolicy", "MutationGateway"]
