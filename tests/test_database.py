"""SQLite record store tests"""

import pytest

from club_subdomains.database import Database


@pytest.fixture
def seeded(sqlite_db):
    """Database with two domains and a few clubs"""
    sqlite_db.domain = sqlite_db.add_domain("example.club")
    sqlite_db.other_domain = sqlite_db.add_domain("hack.club")
    sqlite_db.club = sqlite_db.add_club_name("Robotics Club")
    sqlite_db.add_club_name("Chess Club")
    sqlite_db.add_club_name("ROBOT Builders")
    return sqlite_db


def test_database_initialization_sqlite():
    db = Database(database_url="sqlite:///:memory:")
    assert db.mode == "sqlite"
    assert db.database_url.startswith("sqlite")


def test_database_uses_sqlite_path(tmp_path):
    db = Database(sqlite_path=str(tmp_path / "local.db"))
    assert db.database_url == f"sqlite:///{tmp_path / 'local.db'}"


@pytest.mark.asyncio
async def test_list_domains(seeded):
    domains = await seeded.list_domains()
    assert [d.name for d in domains] == ["example.club", "hack.club"]


@pytest.mark.asyncio
async def test_search_club_names_case_insensitive(seeded):
    clubs = await seeded.search_club_names("robot", 50)
    assert sorted(c.name for c in clubs) == ["ROBOT Builders", "Robotics Club"]


@pytest.mark.asyncio
async def test_search_club_names_treats_wildcards_literally(seeded):
    seeded.add_club_name("100% Club")
    clubs = await seeded.search_club_names("0%", 50)
    assert [c.name for c in clubs] == ["100% Club"]


@pytest.mark.asyncio
async def test_search_club_names_limit(sqlite_db):
    for i in range(60):
        sqlite_db.add_club_name(f"Club {i:02d}")
    clubs = await sqlite_db.search_club_names("club", 50)
    assert len(clubs) == 50


@pytest.mark.asyncio
async def test_create_subdomain_is_inactive(seeded):
    record = await seeded.create_subdomain(
        subdomain="robots",
        email="alice@example.com",
        github_repo="https://github.com/robots/site",
        domains=[seeded.domain.id],
        club_names=[seeded.club.id],
    )

    assert record.id.startswith("rec")
    assert record.active is False
    assert record.domains == [seeded.domain.id]
    assert record.domain_name == "example.club"
    assert record.club_name_label == "Robotics Club"


@pytest.mark.asyncio
async def test_list_subdomains_by_email(seeded):
    await seeded.create_subdomain("a", "alice@example.com", None, [], [])
    await seeded.create_subdomain("b", "bob@example.com", None, [], [])

    rows = await seeded.list_subdomains("alice@example.com")
    assert [r.subdomain for r in rows] == ["a"]


@pytest.mark.asyncio
async def test_get_and_update_subdomain(seeded):
    created = await seeded.create_subdomain("a", "alice@example.com", None, [], [])

    updated = await seeded.update_github_repo(created.id, "https://github.com/a/b")
    fetched = await seeded.get_subdomain(created.id)

    assert updated.github_repo == "https://github.com/a/b"
    assert fetched.github_repo == "https://github.com/a/b"
    assert await seeded.get_subdomain("recmissing") is None


@pytest.mark.asyncio
async def test_update_missing_subdomain_raises(sqlite_db):
    with pytest.raises(LookupError):
        await sqlite_db.update_github_repo("recmissing", "x")


@pytest.mark.asyncio
async def test_set_active(seeded):
    created = await seeded.create_subdomain("a", "alice@example.com", None, [], [])

    record = seeded.set_active(created.id)

    assert record.active is True
    assert (await seeded.get_subdomain(created.id)).active is True
    assert seeded.set_active("recmissing") is None


@pytest.mark.asyncio
async def test_ping(sqlite_db):
    await sqlite_db.ping()
