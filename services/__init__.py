"""Service layer: session lifecycle orchestration and domain errors."""
