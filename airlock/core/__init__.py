"""Core building blocks: errors, hashing, rollout partitioning, signing."""
