"""
Symbols Store
JSON-file watch-list shared by the scanner (read) and the Telegram commands (write)
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import List, Union

from freshwallet.base import BaseSymbolStore

logger = logging.getLogger(__name__)


class SymbolsStore(BaseSymbolStore):
    """
    Watch-list persisted as a JSON array of lowercase symbols.

    - missing file -> created empty
    - unreadable / non-array content -> reset to empty
    """

    def __init__(self, path: Union[str, Path] = "symbols.json"):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _write(self, symbols: List[str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(symbols, f, indent=2)
        os.replace(tmp_path, self.path)

    def _read(self) -> List[str]:
        if not self.path.exists():
            logger.info(f"[SYMBOLS] {self.path} not found, creating empty watch-list")
            self._write([])
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"[SYMBOLS] {self.path} unreadable ({e}), resetting to empty")
            self._write([])
            return []

        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            logger.warning(f"[SYMBOLS] {self.path} contains invalid data, resetting to empty")
            self._write([])
            return []

        return list(dict.fromkeys(item.strip().lower() for item in data if item.strip()))

    def get_symbols(self) -> List[str]:
        with self._lock:
            return self._read()

    def add_symbol(self, symbol: str) -> bool:
        """
        Returns:
            False if the symbol was already watched
        """
        normalized = symbol.strip().lower()
        with self._lock:
            symbols = self._read()
            if normalized in symbols:
                return False
            symbols.append(normalized)
            self._write(symbols)
        logger.info(f"[SYMBOLS] Added {normalized}")
        return True

    def remove_symbol(self, symbol: str) -> bool:
        """
        Returns:
            False if the symbol was not watched
        """
        normalized = symbol.strip().lower()
        with self._lock:
            symbols = self._read()
            if normalized not in symbols:
                return False
            symbols.remove(normalized)
            self._write(symbols)
        logger.info(f"[SYMBOLS] Removed {normalized}")
        return True
