"""Adapters connecting the core to storage, transport and host runtimes."""
