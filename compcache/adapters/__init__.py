"""Adapters — bindings for the external collaborators (git, archive tools, storage, compiler)."""
