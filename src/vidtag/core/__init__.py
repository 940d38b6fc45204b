"""Core write pipeline: capability matrix, backends, orchestrator and audit."""
