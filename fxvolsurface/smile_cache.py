"""
Per-expiry memo of built smile sections.

Fitting a smile is the expensive step of a surface query, and pricing
runs keep asking for the same handful of expiries. Entries are keyed by
the exact expiry time; there is no tolerance matching. Once the cache
holds more than ``max_size`` entries the next insert flushes all of
them, which keeps the policy trivial for the small key sets it sees.
"""

import logging
from typing import Dict, Optional

from . import config
from .smile_sections import SmileSection

logger = logging.getLogger(__name__)


class SmileCache:

    def __init__(self, max_size: int = None):
        self.max_size = config.SMILE_CACHE_MAX_SIZE if max_size is None else max_size
        if self.max_size < 0:
            raise ValueError(f"max_size ({self.max_size}) must be non-negative")
        self._smiles: Dict[float, SmileSection] = {}

    def fetch_smile(self, t: float) -> Optional[SmileSection]:
        """Smile stored for exactly ``t``, or None."""
        return self._smiles.get(t)

    def add_smile(self, t: float, smile: SmileSection) -> None:
        if len(self._smiles) > self.max_size:
            logger.debug("smile cache above %d entries, flushing", self.max_size)
            self.clear()
        self._smiles[t] = smile

    def clear(self) -> None:
        self._smiles.clear()

    def __len__(self) -> int:
        return len(self._smiles)

    def __contains__(self, t: float) -> bool:
        return t in self._smiles
