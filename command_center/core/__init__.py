"""Automation core: execution engine, orchestrator and realtime broadcaster."""
