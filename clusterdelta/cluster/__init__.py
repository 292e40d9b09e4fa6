"""Cluster access for clusterdelta.

Submodules
----------
reader -- ClusterReader protocol and the kubernetes-asyncio implementation.
errors -- ClusterReadError / NotFoundError raised at the read boundary.
owners -- Bounded root-owner resolution (MAX_OWNER_DEPTH = 10).
pods   -- Pod phase, readiness and request helpers.
nodes  -- Node addressing, capacity type, rebalance eligibility, delta builder.
"""
