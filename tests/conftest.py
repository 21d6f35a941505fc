import pytest

from frenchmaster.data_service import FrenchDataService
from frenchmaster.datasets import BundledContent
from frenchmaster.kvstore import MemoryKeyValueStore
from frenchmaster.models import Category
from frenchmaster.store import ContentStore

CONJUGATIONS = {
    "je": ["vais"],
    "tu": ["vas"],
    "il": ["va"],
    "nous": ["allons"],
    "vous": ["allez"],
    "ils": ["vont"],
}


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "content.db"


@pytest.fixture
def store(db_path):
    return ContentStore(db_path)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def content():
    return BundledContent(
        bundled={
            Category.WORD: [
                {"english": "hello", "french": ["bonjour"]},
                {"english": "broken"},
                {"english": "cat", "french": "chat"},
            ],
            Category.SENTENCE: [
                {"english": "I am fine", "french": ["Je vais bien"]},
            ],
        },
        additional={
            Category.WORD: [{"english": "dog", "french": ["chien"]}],
            Category.VERB: [
                {"infinitive": "être", "english": "to be", "conjugations": {"je": ["suis"]}},
            ],
            Category.NUMBER: [
                {"english": "1", "french": ["un"]},
                {"english": "2", "french": ["deux"]},
            ],
        },
    )


@pytest.fixture
def service(store, kv, content):
    return FrenchDataService(store=store, kv=kv, content=content)


@pytest.fixture
def empty_service(store, kv):
    return FrenchDataService(store=store, kv=kv)


@pytest.fixture
def make_verb():
    def _make(infinitive="aller", english="to go", **extra):
        verb = {"infinitive": infinitive, "english": english, "conjugations": dict(CONJUGATIONS)}
        verb.update(extra)
        return verb

    return _make
