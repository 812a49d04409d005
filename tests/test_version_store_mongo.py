import sys
import types

from src.nova.infrastructure import version_store as vs


class _Cursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d[key], reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(self._docs)


class _FakeCollection:
    def __init__(self):
        self.docs = []

    def create_index(self, *args, **kwargs):
        return "ok"

    def find(self, query):
        return _Cursor(d for d in self.docs if all(d.get(k) == v for k, v in query.items()))

    def find_one(self, query):
        return next(iter(self.find(query)), None)

    def insert_one(self, doc):
        self.docs.append(doc)

    def delete_many(self, query):
        keep = [d for d in self.docs if not all(d.get(k) == v for k, v in query.items())]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return types.SimpleNamespace(deleted_count=deleted)


class _FakeMongoClient:
    collection = _FakeCollection()

    def __init__(self, url, serverSelectionTimeoutMS=None):
        self.url = url

    def server_info(self):
        return {}

    def __getitem__(self, name):
        return {"versions": _FakeMongoClient.collection}


class _DownMongoClient(_FakeMongoClient):
    def server_info(self):
        raise RuntimeError("no server")


def _install_pymongo(monkeypatch, client_cls):
    monkeypatch.setitem(sys.modules, "pymongo", types.SimpleNamespace(MongoClient=client_cls))


def test_mongo_version_store_roundtrip(monkeypatch):
    _FakeMongoClient.collection = _FakeCollection()
    _install_pymongo(monkeypatch, _FakeMongoClient)
    store = vs.MongoVersionStore()
    assert not store._use_fallback()

    v1 = store.create_version("p1", {"index.html": "one"})
    v2 = store.create_version("p1", {"index.html": "two"}, meta={"reason": "publish"})
    assert (v1.number, v2.number) == (1, 2)
    assert [v.number for v in store.list_versions("p1")] == [1, 2]
    assert store.get_version(v1.version_id).snapshot == {"index.html": "one"}
    assert store.latest_version("p1").meta == {"reason": "publish"}
    assert store.get_version("missing") is None

    other = store.create_version("p2", {"a": "1"})
    assert store.delete_project("p1") == 2
    assert store.list_versions("p1") == []
    assert store.get_version(v1.version_id) is None
    assert store.get_version(other.version_id).number == 1


def test_mongo_version_store_falls_back_to_memory(monkeypatch):
    _install_pymongo(monkeypatch, _DownMongoClient)
    monkeypatch.delenv("NOVA_VERSION_STORE_REQUIRE_MONGO", raising=False)
    store = vs.MongoVersionStore()
    assert store._use_fallback()
    v = store.create_version("p1", {"a": "1"})
    assert store.get_version(v.version_id).number == 1


def test_get_version_store_selects_impl(monkeypatch):
    _install_pymongo(monkeypatch, _DownMongoClient)
    monkeypatch.setattr(vs, "_store", None)
    monkeypatch.setenv("NOVA_VERSION_STORE_IMPL", "mongo")
    assert isinstance(vs.get_version_store(), vs.MongoVersionStore)

    monkeypatch.setattr(vs, "_store", None)
    monkeypatch.setenv("NOVA_VERSION_STORE_IMPL", "memory")
    assert isinstance(vs.get_version_store(), vs.InMemoryVersionStore)
    monkeypatch.setattr(vs, "_store", None)
