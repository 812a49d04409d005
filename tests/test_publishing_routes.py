import re
import uuid

import pytest
from fastapi.testclient import TestClient

from src.nova.api.main import app
from src.nova.domain.deploy_models import DeploymentStatus
from src.nova.infrastructure.deployment_store import get_deployment_store
from src.nova.services import deploy_sink, publishing
from src.nova.services.deploy_sink import SinkReceipt
from .utils import make_project


client = TestClient(app)

SITE = {
    "index.html": "<html><head><title>v1</title></head><body>v1</body></html>",
    "pages/about.html": "<html><head></head><body>About</body></html>",
}


def _unique_name():
    return f"My Cool App {uuid.uuid4().hex[:8]}!!"


def _publish(pid, **extra):
    payload = {"project_id": pid}
    payload.update(extra)
    return client.post("/deployments", json=payload)


def test_publish_snapshots_and_goes_live():
    name = _unique_name()
    proj = make_project(files=SITE, name=name)
    r = _publish(proj.project_id)
    assert r.status_code == 201, r.text
    dep = r.json()
    expected_slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    assert dep["slug"] == expected_slug
    assert dep["status"] == "live"
    assert dep["url"] == f"https://{expected_slug}.novabuilder.app"

    assert client.get(f"/projects/{proj.project_id}").json()["status"] == "live"
    versions = client.get("/versions", params={"project_id": proj.project_id}).json()
    assert [v["number"] for v in versions] == [1]
    assert versions[0]["file_count"] == 2
    assert client.get(f"/deployments/by-slug/{expected_slug}").json()["deployment_id"] == dep["deployment_id"]


def test_slug_collision_gets_suffix():
    name = _unique_name()
    first = make_project(files=SITE, name=name)
    second = make_project(files=SITE, name=name)
    slug1 = _publish(first.project_id).json()["slug"]
    r = _publish(second.project_id)
    assert r.status_code == 201
    assert re.fullmatch(rf"{re.escape(slug1)}-\d{{6}}", r.json()["slug"])


def test_publish_with_base_url_and_explicit_slug():
    proj = make_project(files=SITE)
    slug = f"custom-{uuid.uuid4().hex[:8]}"
    r = _publish(proj.project_id, slug=slug, base_url="http://localhost:8000/")
    assert r.status_code == 201
    assert r.json()["url"] == f"http://localhost:8000/preview/{slug}"


def test_published_preview_serves_frozen_snapshot():
    proj = make_project(files=SITE)
    slug = _publish(proj.project_id).json()["slug"]

    # Later edits do not leak into the published site
    client.put(f"/projects/{proj.project_id}/files", json={"files": {"index.html": "<p>v2</p>"}})

    r = client.get(f"/preview/{slug}")
    assert r.status_code == 200
    assert "v1" in r.text
    assert f'<base href="http://testserver/preview/{slug}/">' in r.text
    assert r.headers["cache-control"] == "public, max-age=60, stale-while-revalidate=30"

    r = client.get(f"/api/preview/{slug}/pages/about")
    assert r.status_code == 200
    assert f'<base href="http://testserver/api/preview/{slug}/pages/">' in r.text

    r = client.get(f"/preview/{slug}/missing.css")
    assert r.status_code == 404
    assert r.text == "File not found: missing.css"


def test_unknown_slug_shows_not_found_page():
    r = client.get("/preview/definitely-not-a-slug")
    assert r.status_code == 404
    assert "Deployment not found" in r.text
    assert client.get("/preview/definitely-not-a-slug/index.html").status_code == 404
    assert client.get("/deployments/by-slug/definitely-not-a-slug").status_code == 404


def test_publish_errors():
    assert _publish("PRJ-0000-9999").status_code == 404
    empty = make_project()
    r = _publish(empty.project_id)
    assert r.status_code == 400
    other = make_project(files=SITE)
    assert _publish(other.project_id, version_id="nope").status_code == 404


def test_publish_existing_version():
    proj = make_project(files=SITE)
    v1 = client.post("/versions", json={"project_id": proj.project_id, "note": "first"}).json()
    client.put(f"/projects/{proj.project_id}/files", json={"files": {"index.html": "<p>v2</p>"}})
    r = _publish(proj.project_id, version_id=v1["version_id"])
    assert r.status_code == 201
    assert r.json()["version_id"] == v1["version_id"]
    assert "v1" in client.get(f"/preview/{r.json()['slug']}").text


class _RemoteSink:
    state = "BUILDING"

    def submit(self, slug, files):
        return SinkReceipt(requires_build=True, external_id=f"ext-{slug}")

    def status(self, external_id):
        return _RemoteSink.state


def test_remote_build_status_is_polled():
    deploy_sink.set_deploy_sink(_RemoteSink())
    _RemoteSink.state = "BUILDING"
    proj = make_project(files=SITE)
    dep = _publish(proj.project_id).json()
    assert dep["status"] == "building"
    assert dep["external_id"].startswith("ext-")

    assert client.get(f"/deployments/{dep['deployment_id']}/status").json()["status"] == "building"
    _RemoteSink.state = "READY"
    assert client.get(f"/deployments/{dep['deployment_id']}/status").json()["status"] == "live"

    _RemoteSink.state = "ERROR"
    failing = _publish(proj.project_id).json()
    assert client.get(f"/deployments/{failing['deployment_id']}/status").json()["status"] == "failed"
    assert client.get("/deployments/nope/status").status_code == 404

    listed = client.get("/deployments", params={"project_id": proj.project_id}).json()
    assert {d["deployment_id"] for d in listed} == {dep["deployment_id"], failing["deployment_id"]}


def test_versions_and_rollback():
    proj = make_project(files={"index.html": "one"})
    pid = proj.project_id
    v1 = client.post("/versions", json={"project_id": pid}).json()
    client.put(f"/projects/{pid}/files", json={"files": {"index.html": "two", "extra.css": "x"}})
    v2 = client.post("/versions", json={"project_id": pid, "note": "second"}).json()
    assert (v1["number"], v2["number"]) == (1, 2)

    listed = client.get("/versions", params={"project_id": pid}).json()
    assert [v["number"] for v in listed] == [2, 1]
    assert client.get(f"/versions/{v2['version_id']}").json()["snapshot"] == {"index.html": "two", "extra.css": "x"}

    r = client.post(f"/versions/{v1['version_id']}/rollback")
    assert r.status_code == 200
    assert r.json() == {"project_id": pid, "restored_version": 1, "file_count": 1}
    assert client.get(f"/projects/{pid}/files").json()["files"] == {"index.html": "one"}

    # Versions are untouched by rollback
    assert len(client.get("/versions", params={"project_id": pid}).json()) == 2


def test_version_errors():
    assert client.post("/versions", json={"project_id": "PRJ-0000-9999"}).status_code == 404
    assert client.get("/versions/nope").status_code == 404
    assert client.post("/versions/nope/rollback").status_code == 404
    assert client.get("/versions", params={"project_id": "PRJ-0000-9999"}).status_code == 404


def test_deleting_project_takes_its_sites_offline():
    proj = make_project(files=SITE)
    pid = proj.project_id
    dep = _publish(pid).json()
    slug, vid = dep["slug"], dep["version_id"]
    assert client.get(f"/preview/{slug}").status_code == 200

    assert client.delete(f"/projects/{pid}").status_code == 204

    r = client.get(f"/preview/{slug}")
    assert r.status_code == 404
    assert "Deployment not found" in r.text
    assert client.get(f"/preview/{slug}/pages/about").status_code == 404
    assert client.get(f"/versions/{vid}").status_code == 404
    assert client.get(f"/deployments/by-slug/{slug}").json()["status"] == "stopped"

    # The slug stays reserved for the stopped deployment
    other = make_project(files=SITE)
    assert _publish(other.project_id, slug=slug).json()["slug"] != slug


def test_published_site_without_index_is_not_found():
    proj = make_project(files={"about.html": "<html><head></head><body>About</body></html>"})
    slug = _publish(proj.project_id).json()["slug"]
    for path in (f"/preview/{slug}", f"/preview/{slug}/"):
        r = client.get(path)
        assert r.status_code == 404
        assert "Deployment not found" in r.text
        assert "Describe the app" not in r.text
    assert client.get(f"/preview/{slug}/about").status_code == 200


class _InspectingSink:
    def __init__(self):
        self.seen = []

    def submit(self, slug, files):
        row = get_deployment_store().get_by_slug(slug)
        self.seen.append((slug, row.status if row else None))
        return SinkReceipt(requires_build=False, url=f"https://cdn.example/{slug}")

    def status(self, external_id):
        return "READY"


def test_slug_is_reserved_before_sink_sees_files():
    sink = _InspectingSink()
    deploy_sink.set_deploy_sink(sink)
    proj = make_project(files=SITE)
    dep = _publish(proj.project_id).json()
    assert sink.seen == [(dep["slug"], DeploymentStatus.BUILDING)]
    assert dep["status"] == "live"
    assert dep["url"] == f"https://cdn.example/{dep['slug']}"


def test_slug_race_never_reaches_sink(monkeypatch):
    sink = _InspectingSink()
    deploy_sink.set_deploy_sink(sink)
    taken = make_project(files=SITE)
    slug = _publish(taken.project_id).json()["slug"]
    sink.seen.clear()

    # A concurrent publish that saw the slug as free loses at insert time
    store = get_deployment_store()
    monkeypatch.setattr(store, "slug_exists", lambda s: False)
    racer = make_project(files=SITE)
    r = _publish(racer.project_id, slug=slug)
    assert r.status_code == 409
    assert sink.seen == []
    assert store.get_by_slug(slug).project_id == taken.project_id


class _BrokenSink:
    def submit(self, slug, files):
        raise RuntimeError("upload refused")

    def status(self, external_id):
        return "ERROR"


def test_sink_failure_marks_deployment_failed():
    deploy_sink.set_deploy_sink(_BrokenSink())
    proj = make_project(files=SITE)
    slug = f"broken-{uuid.uuid4().hex[:8]}"
    with pytest.raises(RuntimeError):
        publishing.publish(proj.project_id, slug=slug)
    assert get_deployment_store().get_by_slug(slug).status == DeploymentStatus.FAILED
