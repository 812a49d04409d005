from src.nova.infrastructure.repository import FileProjectRepository, InMemoryProjectRepository
from src.nova.infrastructure import repository as repository_module
from src.nova.domain.models import ProjectCreate, ProjectUpdate


def test_file_repo_crud_and_persistence(tmp_path):
    pfile = tmp_path / "projects.json"
    repo = FileProjectRepository(file_path=str(pfile))

    # Initially empty
    assert repo.list() == []

    # Create project with an initial file set
    proj = repo.create(ProjectCreate(name="Unit Test", description="Desc", files={"index.html": "<h1/>"}))
    assert proj.project_id.startswith("PRJ-")
    assert proj.status == "draft"
    assert repo.get_files(proj.project_id) == {"index.html": "<h1/>"}

    # Replace files and status
    assert repo.replace_files(proj.project_id, {"index.html": "<h2/>", "css/s.css": "x"}) is True
    upd = repo.set_status(proj.project_id, "live")
    assert upd is not None and upd.status == "live"

    # Persisted to file and reload into a fresh repo
    repo2 = FileProjectRepository(file_path=str(pfile))
    got = repo2.get(proj.project_id)
    assert got is not None and got.name == "Unit Test" and got.status == "live"
    assert repo2.get_files(proj.project_id) == {"index.html": "<h2/>", "css/s.css": "x"}

    # Counter continues after reload
    second = repo2.create(ProjectCreate(name="Second"))
    assert second.project_id != proj.project_id
    assert second.project_id.endswith("0002")

    # Delete
    ok = repo2.delete(proj.project_id)
    assert ok is True
    assert repo2.get(proj.project_id) is None
    assert repo2.get_files(proj.project_id) is None


def test_file_repo_ignores_unreadable_file(tmp_path):
    pfile = tmp_path / "projects.json"
    pfile.write_text("{not json", encoding="utf-8")
    repo = FileProjectRepository(file_path=str(pfile))
    assert repo.list() == []


def test_memory_repo_returns_copies_of_files():
    repo = InMemoryProjectRepository()
    proj = repo.create(ProjectCreate(name="Copy", files={"a": "1"}))
    files = repo.get_files(proj.project_id)
    files["a"] = "mutated"
    assert repo.get_files(proj.project_id) == {"a": "1"}
    assert repo.replace_files("missing", {}) is False
    assert repo.update("missing", ProjectUpdate(name="x")) is None


def test_get_repo_switches_on_env(monkeypatch, tmp_path):
    monkeypatch.setenv("NOVA_REPO_IMPL", "file")
    monkeypatch.setenv("NOVA_PROJECTS_FILE", str(tmp_path / "p.json"))
    monkeypatch.setattr(repository_module, "_file_repo", None)
    repo = repository_module.get_repo()
    assert isinstance(repo, FileProjectRepository)
    assert repository_module.get_repo() is repo

    monkeypatch.setenv("NOVA_REPO_IMPL", "memory")
    assert repository_module.get_repo() is repository_module._repo
