"""Core HR module — the employee record the engine reads."""
