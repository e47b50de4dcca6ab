"""Data gateway rules: search bounds, ownership and the one-subdomain quota"""

import pytest

from club_subdomains.errors import (
    Forbidden,
    NotFound,
    QuotaExceeded,
    Unauthenticated,
    ValidationFailure,
)
from club_subdomains.gateway import DataGateway, normalize_label
from club_subdomains.identity import IdentityResult
from club_subdomains.models import ClubName, Role, Subdomain

from .conftest import ALICE, BOB


def identity(userinfo, *roles):
    return IdentityResult(
        authenticated=True,
        userinfo=dict(userinfo),
        roles=[Role(id=r, name=r) for r in roles],
    )


@pytest.fixture
def gateway(sqlite_db, settings):
    return DataGateway(sqlite_db, settings)


@pytest.fixture
def alice():
    return identity(ALICE)


@pytest.fixture
def bob():
    return identity(BOB)


@pytest.mark.asyncio
@pytest.mark.parametrize("term", [None, "", " ", "r", " r "])
async def test_short_search_returns_nothing(gateway, sqlite_db, term):
    sqlite_db.add_club_name("Robotics Club")
    assert await gateway.list_club_names(term) == []


@pytest.mark.asyncio
async def test_search_is_capped(gateway, sqlite_db):
    for i in range(60):
        sqlite_db.add_club_name(f"Robotics {i:02d}")

    clubs = await gateway.list_club_names("robotics")

    assert len(clubs) == 50
    assert all("robotics" in c.name.lower() for c in clubs)


@pytest.mark.asyncio
async def test_search_rechecks_store_results(settings):
    class LooseStore:
        mode = "fake"

        async def search_club_names(self, term, limit):
            return [ClubName("a", "Robotics Club"), ClubName("b", "Chess Club")]

    clubs = await DataGateway(LooseStore(), settings).list_club_names("robo")
    assert [c.name for c in clubs] == ["Robotics Club"]


@pytest.mark.asyncio
async def test_list_subdomains_requires_identity(gateway):
    with pytest.raises(Unauthenticated):
        await gateway.list_subdomains(IdentityResult())


@pytest.mark.asyncio
async def test_missing_email_is_a_validation_failure(gateway):
    with pytest.raises(ValidationFailure, match="User email not found"):
        await gateway.list_subdomains(identity({"sub": "no-mail"}))


@pytest.mark.asyncio
async def test_list_subdomains_only_returns_owned_rows(gateway, sqlite_db, alice, bob):
    await sqlite_db.create_subdomain("a", ALICE["email"], None, [], [])
    await sqlite_db.create_subdomain("b", BOB["email"], None, [], [])

    rows = await gateway.list_subdomains(alice)

    assert [r.subdomain for r in rows] == ["a"]


@pytest.mark.asyncio
async def test_list_subdomains_drops_foreign_rows_from_store(settings, alice):
    class LeakyStore:
        mode = "fake"

        async def list_subdomains(self, email):
            return [Subdomain("1", "a", ALICE["email"]), Subdomain("2", "b", BOB["email"])]

    rows = await DataGateway(LeakyStore(), settings).list_subdomains(alice)
    assert [r.id for r in rows] == ["1"]


@pytest.mark.asyncio
async def test_create_subdomain(gateway, sqlite_db, alice):
    domain = sqlite_db.add_domain("example.club")

    record = await gateway.create_subdomain(alice, " Robots ", " https://github.com/a/b ", [domain.id], [])

    assert record.subdomain == "robots"
    assert record.email == ALICE["email"]
    assert record.github_repo == "https://github.com/a/b"
    assert record.active is False


@pytest.mark.asyncio
async def test_second_subdomain_rejected(gateway, alice):
    await gateway.create_subdomain(alice, "first", None, [], [])

    with pytest.raises(QuotaExceeded) as exc:
        await gateway.create_subdomain(alice, "second", None, [], [])

    assert exc.value.status_code == 409
    assert [r.subdomain for r in await gateway.list_subdomains(alice)] == ["first"]


@pytest.mark.asyncio
async def test_quota_is_per_owner(gateway, alice, bob):
    await gateway.create_subdomain(alice, "first", None, [], [])
    record = await gateway.create_subdomain(bob, "other", None, [], [])
    assert record.email == BOB["email"]


@pytest.mark.asyncio
async def test_multi_subdomain_role_bypasses_quota(gateway, settings):
    elevated = identity(ALICE, settings.multi_subdomain_role)

    await gateway.create_subdomain(elevated, "first", None, [], [])
    await gateway.create_subdomain(elevated, "second", None, [], [])

    assert len(await gateway.list_subdomains(elevated)) == 2
    assert gateway.can_create_multiple(elevated) is True
    assert gateway.is_admin(elevated) is False


@pytest.mark.parametrize("label", ["-bad", "bad-", "has space", "under_score", "a" * 64, "dots.not.allowed"])
def test_invalid_labels_rejected(label):
    with pytest.raises(ValidationFailure):
        normalize_label(label)


def test_empty_label_rejected():
    with pytest.raises(ValidationFailure, match="required"):
        normalize_label("  ")


def test_valid_labels():
    assert normalize_label("Robotics-Club") == "robotics-club"
    assert normalize_label("a") == "a"
    assert normalize_label("a" * 63) == "a" * 63


@pytest.mark.asyncio
async def test_update_own_subdomain(gateway, alice):
    created = await gateway.create_subdomain(alice, "robots", None, [], [])

    updated = await gateway.update_github_repo(alice, created.id, "https://github.com/a/new")

    assert updated.github_repo == "https://github.com/a/new"


@pytest.mark.asyncio
async def test_update_foreign_subdomain_forbidden(gateway, alice, bob):
    created = await gateway.create_subdomain(alice, "robots", "https://github.com/a/b", [], [])

    with pytest.raises(Forbidden):
        await gateway.update_github_repo(bob, created.id, "https://github.com/evil/x")

    rows = await gateway.list_subdomains(alice)
    assert rows[0].github_repo == "https://github.com/a/b"


@pytest.mark.asyncio
async def test_update_missing_subdomain_not_found(gateway, alice):
    with pytest.raises(NotFound):
        await gateway.update_github_repo(alice, "recmissing", "x")
