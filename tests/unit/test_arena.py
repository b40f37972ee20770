import asyncio

from wasession.infra.arena import CredentialArena

_run = asyncio.run


def test_allocate_creates_unique_directory_per_call(tmp_path) -> None:
    arena = CredentialArena(tmp_path)

    async def _scenario():
        first = await arena.allocate("req-1")
        first_dir = first.directory
        assert first_dir.is_dir()
        second = await arena.allocate("req-1")
        return first_dir, second.directory

    first_dir, second_dir = _run(_scenario())

    assert first_dir != second_dir
    assert not first_dir.exists()
    assert second_dir.is_dir()
    assert second_dir.parent == tmp_path
    assert second_dir.name.startswith("req-1-")
    assert arena.active() == ["req-1"]


def test_requests_get_separate_directories(tmp_path) -> None:
    arena = CredentialArena(tmp_path)

    async def _scenario():
        a = await arena.allocate("alpha")
        b = await arena.allocate("beta")
        await a.save_creds({"registration_id": 1})
        return a, b

    a, b = _run(_scenario())

    assert a.directory != b.directory
    assert a.credentials_path.exists()
    assert not b.credentials_path.exists()
    assert sorted(arena.active()) == ["alpha", "beta"]
    assert arena.get("alpha") is a


def test_release_removes_directory(tmp_path) -> None:
    arena = CredentialArena(tmp_path)

    async def _scenario():
        storage = await arena.allocate("req")
        await storage.save_creds({"registered": True})
        await arena.release("req")
        await arena.release("req")
        return storage.directory

    directory = _run(_scenario())

    assert not directory.exists()
    assert arena.active() == []
    assert arena.get("req") is None


def test_release_all(tmp_path) -> None:
    arena = CredentialArena(tmp_path)

    async def _scenario():
        for request_id in ("a", "b", "c"):
            await arena.allocate(request_id)
        await arena.release_all()

    _run(_scenario())

    assert arena.active() == []
    assert list(tmp_path.iterdir()) == []


def test_unsafe_request_id_is_sanitized(tmp_path) -> None:
    arena = CredentialArena(tmp_path)

    storage = _run(arena.allocate("../../etc"))

    assert storage.directory.parent == tmp_path
    assert storage.directory.name.startswith("etc-")


def test_purge_removes_stale_directories_only(tmp_path) -> None:
    (tmp_path / "old-1").mkdir()
    (tmp_path / "old-2").mkdir()
    (tmp_path / "notes.txt").write_text("keep")
    arena = CredentialArena(tmp_path)
    live = _run(arena.allocate("live"))

    assert arena.purge() == 2
    assert live.directory.is_dir()
    assert (tmp_path / "notes.txt").exists()


def test_purge_missing_root(tmp_path) -> None:
    assert CredentialArena(tmp_path / "missing").purge() == 0
