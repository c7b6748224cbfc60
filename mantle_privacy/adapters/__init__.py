"""In-memory stand-ins for the pool contract, announcer and prover."""
