"""Tests for the sandboxed tenant file store."""

import zipfile

import pytest

from bothost.exceptions import NotFoundError, ValidationError
from bothost.files.store import TenantFileStore
from bothost.types import FileKind


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "bots" / "t1" / "echo"
    path.mkdir(parents=True)
    return path


# ── Listing ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_directories_first(files, root):
    (root / "b.txt").write_text("hi")
    (root / "a").mkdir()

    entries = await files.list(root)

    assert [e.name for e in entries] == ["a", "b.txt"]
    assert entries[0].kind == FileKind.DIRECTORY
    assert entries[1].kind == FileKind.FILE
    assert entries[1].size == 2
    assert entries[1].extension == ".txt"


@pytest.mark.asyncio
async def test_list_missing_root_is_created(files, tmp_path):
    root = tmp_path / "nowhere"
    assert await files.list(root) == []
    assert root.is_dir()


@pytest.mark.asyncio
async def test_list_skips_hidden_and_dependency_caches(files, root):
    (root / ".env").write_text("TOKEN=x")
    (root / "node_modules").mkdir()
    (root / "__pycache__").mkdir()
    (root / "index.js").write_text("")

    entries = await files.list(root)
    assert [e.name for e in entries] == ["index.js"]


@pytest.mark.asyncio
async def test_list_custom_cache_dirs(root):
    store = TenantFileStore(cache_dirs=["vendor"])
    (root / "vendor").mkdir()
    (root / "node_modules").mkdir()

    entries = await store.list(root)
    assert [e.name for e in entries] == ["node_modules"]


# ── Path confinement ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_write_outside_root_rejected(files, root, tmp_path):
    with pytest.raises(ValidationError):
        await files.write(root, "../../secret", "x")
    assert not (tmp_path / "bots" / "secret").exists()
    assert not (tmp_path / "secret").exists()


@pytest.mark.asyncio
async def test_read_outside_root_rejected(files, root, tmp_path):
    (tmp_path / "bots" / "t1" / "other.txt").write_text("not yours")
    with pytest.raises(ValidationError):
        await files.read(root, "../other.txt")


@pytest.mark.asyncio
async def test_absolute_path_rejected(files, root):
    with pytest.raises(ValidationError):
        await files.read(root, "/etc/passwd")


@pytest.mark.asyncio
async def test_root_itself_rejected(files, root):
    with pytest.raises(ValidationError):
        await files.delete(root, ".")


@pytest.mark.asyncio
async def test_empty_path_rejected(files, root):
    with pytest.raises(ValidationError):
        await files.read(root, "")


@pytest.mark.asyncio
async def test_symlink_escape_rejected(files, root, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (root / "link").symlink_to(outside)

    with pytest.raises(ValidationError):
        await files.write(root, "link/payload.txt", "x")
    assert not (outside / "payload.txt").exists()


# ── Read / write / delete ───────────────────────────────────────

@pytest.mark.asyncio
async def test_write_creates_parents_and_reads_back(files, root):
    await files.write(root, "src/cogs/ping.js", "module.exports = {};")
    assert await files.read(root, "src/cogs/ping.js") == "module.exports = {};"


@pytest.mark.asyncio
async def test_read_missing_file(files, root):
    with pytest.raises(NotFoundError):
        await files.read(root, "missing.js")


@pytest.mark.asyncio
async def test_read_binary_file_rejected(files, root):
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")
    with pytest.raises(ValidationError):
        await files.read(root, "logo.png")


@pytest.mark.asyncio
async def test_delete_missing_is_not_found(files, root):
    with pytest.raises(NotFoundError):
        await files.delete(root, "ghost.js")


@pytest.mark.asyncio
async def test_delete_directory_recursively(files, root):
    await files.write(root, "cogs/a.js", "")
    await files.write(root, "cogs/deep/b.js", "")

    await files.delete(root, "cogs")
    assert not (root / "cogs").exists()


@pytest.mark.asyncio
async def test_resolve_existing_and_missing(files, root):
    (root / "index.js").write_text("")
    assert files.resolve(root, "index.js") == (root / "index.js").resolve()
    with pytest.raises(NotFoundError):
        files.resolve(root, "nope.js")


@pytest.mark.asyncio
async def test_import_file_moves_upload(files, root, tmp_path):
    upload = tmp_path / "upload-123"
    upload.write_text("console.log(1)")

    target = await files.import_file(root, upload, "bot.js")

    assert target.read_text() == "console.log(1)"
    assert not upload.exists()


@pytest.mark.asyncio
async def test_remove_root(files, root):
    (root / "index.js").write_text("")
    await files.remove_root(root)
    assert not root.exists()
    # Second call on a missing root is a no-op.
    await files.remove_root(root)


# ── Archives ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_extract_archive_overwrites(files, root, tmp_path):
    (root / "index.js").write_text("old")
    archive = tmp_path / "bot.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.writestr("index.js", "new")
        zf.writestr("cogs/ping.js", "pong")

    names = await files.extract_archive(archive, root)

    assert sorted(names) == ["cogs/ping.js", "index.js"]
    assert (root / "index.js").read_text() == "new"
    assert (root / "cogs" / "ping.js").read_text() == "pong"


@pytest.mark.asyncio
async def test_extract_invalid_archive(files, root, tmp_path):
    archive = tmp_path / "broken.zip"
    archive.write_text("this is not a zip")
    with pytest.raises(ValidationError):
        await files.extract_archive(archive, root)


# ── Entry resolution ────────────────────────────────────────────

CANDIDATES = ("index.js", "app.js", "main.js", "bot.js")


@pytest.mark.asyncio
async def test_entry_prefers_candidate_order(files, root):
    (root / "bot.js").write_text("")
    (root / "app.js").write_text("")
    entry = await files.resolve_entry(root, CANDIDATES, ".js")
    assert entry.name == "app.js"


@pytest.mark.asyncio
async def test_entry_falls_back_to_first_sorted_extension_match(files, root):
    (root / "zeta.js").write_text("")
    (root / "alpha.js").write_text("")
    (root / "README.md").write_text("")
    entry = await files.resolve_entry(root, CANDIDATES, ".js")
    assert entry.name == "alpha.js"


@pytest.mark.asyncio
async def test_entry_none_when_nothing_matches(files, root):
    (root / "README.md").write_text("")
    (root / "lib").mkdir()
    (root / "lib" / "index.js").write_text("")
    assert await files.resolve_entry(root, CANDIDATES, ".js") is None
