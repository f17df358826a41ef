"""Built-in webhook providers."""

from hookgate.providers.github import github
from hookgate.providers.ragie import ragie
from hookgate.providers.recall import recall

__all__ = ["github", "ragie", "recall"]
