"""Version control adapters."""

from compcache.adapters.vcs.git import GitCli

__all__ = ["GitCli"]
