import asyncio

import pytest

from auth.errors import DuplicateUserError
from auth.models import IdentityClaims, User
from auth.user_store import MemoryUserStore, SqlUserStore, username_candidates


def _claims(provider: str = "discord", subject: str = "42", username: str = "nelly") -> IdentityClaims:
    return IdentityClaims(
        provider=provider,
        provider_user_id=subject,
        email=f"{username}@example.com",
        display_name=username.title(),
        avatar_url="",
        username=username,
    )


def _user(user_id: str, username: str, **provider_ids) -> User:
    return User(id=user_id, email="", username=username, display_name="", avatar_url="", **provider_ids)


def test_username_candidates_suffix_policy() -> None:
    candidates = list(username_candidates("ada"))

    assert candidates[:3] == ["ada", "ada-2", "ada-3"]
    assert candidates[-1].startswith("ada-")
    assert len(candidates) == len(set(candidates))


@pytest.mark.asyncio
async def test_find_or_create_is_idempotent(user_store) -> None:
    first = await user_store.find_or_create("discord", _claims())
    second = await user_store.find_or_create("discord", _claims(username="renamed"))

    assert first.id == second.id
    assert second.username == "nelly"
    assert first.discord_id == "42"
    assert first.google_id is None


@pytest.mark.asyncio
async def test_created_user_is_readable(user_store) -> None:
    created = await user_store.find_or_create("google", _claims("google", "g-1", "ada"))

    assert await user_store.get(created.id) == created
    assert await user_store.get_by_provider_id("google", "g-1") == created


@pytest.mark.asyncio
async def test_lookup_is_keyed_by_provider_id_not_email(user_store) -> None:
    discord_user = await user_store.find_or_create("discord", _claims(subject="1", username="ada"))
    google_user = await user_store.find_or_create("google", _claims("google", "1", "ada"))

    assert discord_user.id != google_user.id
    assert discord_user.email == google_user.email
    assert google_user.username == "ada-2"
    assert google_user.google_id == "1"
    assert google_user.discord_id is None


@pytest.mark.asyncio
async def test_username_collisions_get_suffixes(user_store) -> None:
    names = []
    for subject in ("1", "2", "3"):
        user = await user_store.find_or_create("discord", _claims(subject=subject, username="sam"))
        names.append(user.username)

    assert names == ["sam", "sam-2", "sam-3"]


@pytest.mark.asyncio
async def test_insert_rejects_duplicate_provider_id(user_store) -> None:
    await user_store.insert(_user("u1", "a", discord_id="9"))

    with pytest.raises(DuplicateUserError):
        await user_store.insert(_user("u2", "b", discord_id="9"))


@pytest.mark.asyncio
async def test_insert_rejects_duplicate_username(user_store) -> None:
    await user_store.insert(_user("u1", "a", discord_id="9"))

    with pytest.raises(DuplicateUserError):
        await user_store.insert(_user("u2", "a", google_id="9"))


@pytest.mark.asyncio
async def test_get_missing_user(user_store) -> None:
    assert await user_store.get("missing") is None
    assert await user_store.get_by_provider_id("google", "missing") is None
    assert await user_store.username_taken("nobody") is False


class _RacingStore(MemoryUserStore):
    """Lets a competing signup land between the lookup and the insert."""

    def __init__(self, competitor: User) -> None:
        super().__init__()
        self._competitor = competitor
        self.lookups = 0

    async def get_by_provider_id(self, provider, provider_user_id):
        self.lookups += 1
        found = await super().get_by_provider_id(provider, provider_user_id)
        if self.lookups == 1:
            await super().insert(self._competitor)
        return found


@pytest.mark.asyncio
async def test_concurrent_first_login_uses_existing_row() -> None:
    store = _RacingStore(_user("winner", "someone", discord_id="42"))

    user = await store.find_or_create("discord", _claims())

    assert user.id == "winner"
    assert store.lookups == 2


@pytest.mark.asyncio
async def test_parallel_first_logins_create_one_row(sql_engine) -> None:
    store = SqlUserStore(sql_engine)

    results = await asyncio.gather(
        *(store.find_or_create("google", _claims("google", "g-1", "ada")) for _ in range(5))
    )

    assert len({user.id for user in results}) == 1


@pytest.mark.asyncio
async def test_unknown_provider_is_rejected() -> None:
    with pytest.raises(ValueError):
        await MemoryUserStore().get_by_provider_id("github", "1")
