# services/fetch_guard.py

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class FetchSequencer:
    """
    Numérote chaque fetch au moment où il est lancé.
    Seul le résultat du dernier fetch lancé est appliqué ;
    les autres vont au bout (pas d'annulation réseau) puis sont ignorés.
    """

    def __init__(self):
        self._latest = 0
        self._lock = threading.Lock()

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, tag: int) -> bool:
        return tag == self._latest

    def apply(self, tag: int, fn: Callable, *args, **kwargs) -> bool:
        """
        Exécute fn uniquement si tag est toujours le dernier émis.
        Retourne True si le résultat a été appliqué.
        """
        with self._lock:
            if tag != self._latest:
                logger.debug(
                    f"Résultat périmé ignoré (fetch {tag}, dernier {self._latest})"
                )
                return False
            fn(*args, **kwargs)
            return True
