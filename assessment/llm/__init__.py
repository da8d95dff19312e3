"""Language-model access: routing table, provider adapters, prompts, JSON parsing."""
