from __future__ import annotations

import copy
from typing import Dict, List

from lesson_corpus.storage.local_cache import STANDARDS_KEY
from lesson_corpus.sync import SyncGateway

Catalogue = Dict[str, Dict[str, List[str]]]

DEFAULT_STANDARDS: Catalogue = {
    "Communication and Language": {
        "Listening and Attention": [
            "Listens carefully to rhymes and songs",
            "Enjoys singing and making sounds",
            "Joins in with familiar songs and rhymes",
            "Understands and responds to simple questions or instructions",
        ],
        "Speaking": [
            "Uses talk to express ideas and feelings",
            "Begins to use longer sentences",
            "Talks about what they are doing or making",
        ],
    },
    "Personal, Social and Emotional Development": {
        "Self-Regulation": [
            "Shows confidence to try new activities",
            "Takes turns and shares with others",
            "Expresses own feelings and considers others'",
            "Shows resilience and perseverance",
        ],
    },
}


class StandardsCatalog:
    """Nested area -> group -> statements catalogue of each collection."""

    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway
        self._catalogues: Dict[str, Catalogue] = {}

    def load(self, collection: str) -> Catalogue:
        key = STANDARDS_KEY.format(collection=collection)
        catalogue = self.gateway.load(
            f"standards:{collection}",
            fetch=lambda remote: remote.fetch_standards(collection),
            read_local=lambda cache: cache.get(key),
            write_local=lambda cache, value: cache.set(key, value),
            default=lambda: copy.deepcopy(DEFAULT_STANDARDS),
            push=lambda value: (lambda remote: remote.save_standards(collection, value)),
        )
        self._catalogues[collection] = catalogue
        return copy.deepcopy(catalogue)

    def get(self, collection: str) -> Catalogue:
        if collection not in self._catalogues:
            return self.load(collection)
        return copy.deepcopy(self._catalogues[collection])

    def save(self, collection: str, catalogue: Catalogue) -> None:
        staged = copy.deepcopy(catalogue)
        key = STANDARDS_KEY.format(collection=collection)
        self.gateway.write(
            lambda cache: cache.set(key, staged),
            lambda remote: remote.save_standards(collection, staged),
            operation=f"save_standards:{collection}",
        )
        self._catalogues[collection] = staged
