from .match_store import MatchStore, InMemoryMatchStore, MatchStoreError
