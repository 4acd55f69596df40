"""Read-through cache: stores, check keys, leases, TTL policy, orchestrator."""
