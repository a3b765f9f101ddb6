"""
Versioned Document Store

Key-value records per collection with optimistic concurrency: every record
carries a version token, and a write must present the token it last read.
A stale token is rejected with ConflictError instead of overwriting.
"""

import copy
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import ConflictError, DependencyError, EngineError, StoreTimeout, ValidationError

APPLICATIONS = "business_applications"
OPPORTUNITIES = "opportunities"
WALLETS = "wallets"
INVESTMENTS = "investments"
TRANSACTIONS = "transactions"
ADMIN_PROFILES = "admin_profiles"
ASSIGNMENTS = "assignments"
DUAL_AUTHORIZATIONS = "dual_authorizations"
AUDIT_LOG = "audit_log"


@dataclass(frozen=True)
class Document:
    key: str
    data: dict
    version: int


class DocumentStore:
    """
    Interface for the external record store.

    set() without a version creates the record and fails if the key exists;
    with a version it updates only if the version matches. Each successful
    write returns the document with its new version.
    """

    def get(self, collection: str, key: str) -> Optional[Document]:
        raise NotImplementedError

    def set(self, collection: str, key: str, data: dict, version: Optional[int] = None) -> Document:
        raise NotImplementedError

    def list(self, collection: str, predicate: Optional[Callable[[dict], bool]] = None) -> list[Document]:
        raise NotImplementedError

    def delete(self, collection: str, key: str, version: int) -> None:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store. Data is copied on the way in and out."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._lock:
            doc = self._collections.get(collection, {}).get(key)
            return self._copy(doc) if doc else None

    def set(self, collection: str, key: str, data: dict, version: Optional[int] = None) -> Document:
        if not key:
            raise ValidationError(f"Document key is required for {collection}")
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            current = docs.get(key)

            if version is None:
                if current is not None:
                    raise already_exists(collection, key)
                new_version = 1
            else:
                if current is None or current.version != version:
                    raise stale_version(collection, key, current, version)
                new_version = version + 1

            docs[key] = Document(key=key, data=copy.deepcopy(data), version=new_version)
            return self._copy(docs[key])

    def list(self, collection: str, predicate: Optional[Callable[[dict], bool]] = None) -> list[Document]:
        with self._lock:
            docs = [self._copy(d) for d in self._collections.get(collection, {}).values()]
        if predicate is None:
            return docs
        return [d for d in docs if predicate(d.data)]

    def delete(self, collection: str, key: str, version: int) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            current = docs.get(key)
            if current is None or current.version != version:
                raise stale_version(collection, key, current, version)
            del docs[key]

    @staticmethod
    def _copy(doc: Document) -> Document:
        return Document(key=doc.key, data=copy.deepcopy(doc.data), version=doc.version)


def already_exists(collection: str, key: str) -> ConflictError:
    return ConflictError(f"{collection}/{key} already exists; an update must supply its version")


def stale_version(collection: str, key: str, current: Optional[Document], version: int) -> ConflictError:
    found = current.version if current else "none"
    return ConflictError(
        f"{collection}/{key} was modified concurrently (expected version {version}, found {found})"
    )


class DeadlineStore(DocumentStore):
    """
    Bounds every call to a backend store with a timeout.

    A call that overruns raises StoreTimeout; any backend failure that is not
    already an EngineError becomes DependencyError. A timed-out write may
    still land later, so callers treat it as an unknown outcome.
    """

    def __init__(self, backend: DocumentStore, timeout_seconds: float, max_workers: int = 4):
        self._backend = backend
        self._timeout = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="store")

    def get(self, collection, key):
        return self._call("get", collection, key)

    def set(self, collection, key, data, version=None):
        return self._call("set", collection, key, data, version)

    def list(self, collection, predicate=None):
        return self._call("list", collection, predicate)

    def delete(self, collection, key, version):
        return self._call("delete", collection, key, version)

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _call(self, operation: str, collection: str, *args):
        future = self._executor.submit(getattr(self._backend, operation), collection, *args)
        try:
            return future.result(timeout=self._timeout)
        except FuturesTimeout:
            future.cancel()
            raise StoreTimeout(
                f"Store {operation} on {collection} timed out after {self._timeout}s"
            ) from None
        except EngineError:
            raise
        except Exception as e:
            raise DependencyError(f"Store {operation} on {collection} failed: {e}") from e
