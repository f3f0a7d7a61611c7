"""Build adapters — invoking the project's compiler."""

from compcache.adapters.build.compiler import BuildInvoker, CompileOutcome

__all__ = ["BuildInvoker", "CompileOutcome"]
