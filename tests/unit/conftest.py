"""Shared test fixtures."""

import pytest

from bookmark_tree.core.store import BookmarkStore
from bookmark_tree.models.bookmark import Location
from tests.unit.fakes import CountingIds, FakeBlobStore, SampleTree


@pytest.fixture
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def store(blobs: FakeBlobStore) -> BookmarkStore:
    """An empty store with deterministic ids."""
    return BookmarkStore(blobs, id_factory=CountingIds())


@pytest.fixture
def sample(store: BookmarkStore) -> SampleTree:
    """Populate the store with the sample tree and return its ids."""
    work = store.create_folder("Work")
    x = store.add_bookmark(Location("/project/src/main.py", 10, 4), "entry point", work)
    later = store.create_folder("Later", work)
    y = store.add_bookmark(Location("file:///project/util.py", 3), "helper", later)
    z = store.add_bookmark(Location("/project/README.md", 0), "readme")
    return SampleTree(work=work, x=x, later=later, y=y, z=z)
