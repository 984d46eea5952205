"""Platform adapters for chat gateways."""

from app.adapters.base import BasePlatformAdapter
from app.adapters.evolution import EvolutionAdapter

__all__ = ["BasePlatformAdapter", "EvolutionAdapter"]
