from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta, timezone

import pytest

from userdir.store import DuplicateEmailError, UserNotFoundError, UserStore
from userdir.validation import is_valid_user_id


class FrozenClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int = 1) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def store(clock: FrozenClock) -> UserStore:
    return UserStore(clock=clock)


def test_create_normalizes_and_timestamps(store: UserStore, clock: FrozenClock) -> None:
    user = store.create_user("  Alice  ", "Alice@X.com", 30)

    assert is_valid_user_id(user.id)
    assert user.name == "Alice"
    assert user.email == "alice@x.com"
    assert user.age == 30
    assert user.created_at == user.updated_at == clock.now


def test_create_rejects_duplicate_email_case_insensitively(store: UserStore) -> None:
    store.create_user("Alice", "Alice@X.com", 30)

    with pytest.raises(DuplicateEmailError):
        store.create_user("Bob", "ALICE@x.com", 40)

    assert len(store) == 1


def test_get_returns_created_record(store: UserStore) -> None:
    created = store.create_user("Alice", "alice@x.com", 30)

    assert store.get_user(created.id) == created
    assert store.get_user(created.id) == created
    assert created.id in store


def test_get_unknown_id_returns_none(store: UserStore) -> None:
    assert store.get_user("3f2b8c4e-1a2b-4c3d-8e9f-0a1b2c3d4e5f") is None
    assert store.get_user("anything") is None


def test_list_users_preserves_insertion_order(store: UserStore) -> None:
    first = store.create_user("Alice", "alice@x.com", 30)
    second = store.create_user("Bob", "bob@x.com", 40)
    store.patch_user(first.id, {"age": 31})

    assert [user.id for user in store.list_users()] == [first.id, second.id]


def test_list_users_returns_snapshot(store: UserStore) -> None:
    store.create_user("Alice", "alice@x.com", 30)
    snapshot = store.list_users()
    store.create_user("Bob", "bob@x.com", 40)

    assert len(snapshot) == 1
    assert len(store.list_users()) == 2


def test_records_are_immutable(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    with pytest.raises(AttributeError):
        user.age = 99  # type: ignore[misc]
    assert store.get_user(user.id).age == 30


def test_patch_changes_only_supplied_fields(store: UserStore, clock: FrozenClock) -> None:
    user = store.create_user("Alice", "Alice@X.com", 30)
    clock.advance()

    patched = store.patch_user(user.id, {"age": 31})

    assert patched.id == user.id
    assert patched.name == user.name
    assert patched.email == user.email
    assert patched.age == 31
    assert patched.created_at == user.created_at
    assert patched.updated_at == clock.now


def test_patch_ignores_unknown_keys(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    patched = store.patch_user(user.id, {"id": "other", "role": "admin", "name": "Alicia"})

    assert patched.id == user.id
    assert patched.name == "Alicia"


def test_replace_keeps_omitted_fields(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    replaced = store.replace_user(user.id, email="Alice.New@X.com")

    assert replaced.name == "Alice"
    assert replaced.email == "alice.new@x.com"
    assert replaced.age == 30
    assert store.get_user_by_email("ALICE.NEW@x.com") == replaced
    assert store.get_user_by_email("alice@x.com") is None


def test_replace_and_patch_behave_identically(clock: FrozenClock) -> None:
    left, right = UserStore(clock=clock), UserStore(clock=clock)
    a = left.create_user("Alice", "alice@x.com", 30)
    b = right.create_user("Alice", "alice@x.com", 30)

    replaced = left.replace_user(a.id, name=" Ann ", age=44)
    patched = right.patch_user(b.id, {"name": " Ann ", "age": 44})

    assert (replaced.name, replaced.email, replaced.age) == (patched.name, patched.email, patched.age)


def test_updated_at_moves_forward_with_a_stopped_clock(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    first = store.patch_user(user.id, {"age": 31})
    second = store.patch_user(user.id, {"age": 32})

    assert user.created_at < first.updated_at < second.updated_at


def test_resubmitting_trimmed_name_is_a_no_op(store: UserStore) -> None:
    user = store.create_user("  Bob  ", "bob@x.com", 40)

    patched = store.patch_user(user.id, {"name": user.name})

    assert patched.name == "Bob"


def test_update_with_own_email_in_other_case_succeeds(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    updated = store.replace_user(user.id, email="ALICE@X.COM")

    assert updated.email == "alice@x.com"


def test_duplicate_email_update_leaves_collection_unchanged(store: UserStore) -> None:
    alice = store.create_user("Alice", "alice@x.com", 30)
    store.create_user("Bob", "bob@x.com", 40)
    before = store.list_users()

    with pytest.raises(DuplicateEmailError):
        store.patch_user(alice.id, {"name": "Changed", "email": "BOB@x.com"})
    with pytest.raises(DuplicateEmailError):
        store.replace_user(alice.id, email="bob@X.com", age=99)

    assert store.list_users() == before


def test_mutations_on_unknown_id_raise_not_found(store: UserStore) -> None:
    missing = "3f2b8c4e-1a2b-4c3d-8e9f-0a1b2c3d4e5f"

    with pytest.raises(UserNotFoundError):
        store.replace_user(missing, name="Nobody")
    with pytest.raises(UserNotFoundError):
        store.patch_user(missing, {"age": 10})
    with pytest.raises(UserNotFoundError):
        store.delete_user(missing)


def test_delete_is_final(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30)

    store.delete_user(user.id)

    assert store.get_user(user.id) is None
    assert user.id not in store
    with pytest.raises(UserNotFoundError):
        store.delete_user(user.id)


def test_deleted_email_can_be_reused_with_a_new_id(store: UserStore) -> None:
    first = store.create_user("Alice", "alice@x.com", 30)
    store.delete_user(first.id)

    second = store.create_user("Alice", "alice@x.com", 30)

    assert second.id != first.id


def test_scenario_from_directory_walkthrough(store: UserStore) -> None:
    alice = store.create_user("Alice", "Alice@X.com", 30)
    assert alice.email == "alice@x.com"

    with pytest.raises(DuplicateEmailError):
        store.create_user("Bob", "ALICE@x.com", 40)

    patched = store.patch_user(alice.id, {"age": 31})
    assert (patched.name, patched.email, patched.age) == ("Alice", "alice@x.com", 31)

    store.delete_user(alice.id)
    assert store.get_user(alice.id) is None


def test_concurrent_creates_with_same_email_admit_one() -> None:
    store = UserStore()
    barrier = threading.Barrier(16)
    outcomes: list[str] = []
    outcomes_lock = threading.Lock()

    def worker(index: int) -> None:
        barrier.wait()
        try:
            store.create_user(f"User {index}", "Shared@Example.com", 20 + index)
        except DuplicateEmailError:
            result = "duplicate"
        else:
            result = "created"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("duplicate") == 15
    assert len(store) == 1


def test_random_interleavings_keep_emails_unique() -> None:
    rng = random.Random(1234)
    store = UserStore()
    emails = [f"user{index}@example.com" for index in range(6)]

    def mutate(worker_seed: int) -> None:
        local = random.Random(worker_seed)
        for _ in range(200):
            users = store.list_users()
            email = local.choice(emails)
            if local.choice(("upper", "lower")) == "upper":
                email = email.upper()
            action = local.choice(("create", "replace", "patch", "delete"))
            try:
                if action == "create" or not users:
                    store.create_user("Worker", email, local.randint(1, 149))
                elif action == "replace":
                    store.replace_user(local.choice(users).id, email=email)
                elif action == "patch":
                    store.patch_user(local.choice(users).id, {"email": email, "age": 50})
                else:
                    store.delete_user(local.choice(users).id)
            except (DuplicateEmailError, UserNotFoundError):
                pass

    threads = [threading.Thread(target=mutate, args=(rng.randint(0, 10_000),)) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    records = store.list_users()
    normalized = [user.email for user in records]
    assert len(normalized) == len(set(normalized))
    assert all(email == email.lower() for email in normalized)
    for user in records:
        assert store.get_user_by_email(user.email) == user


def test_whole_number_ages_are_stored_as_integers(store: UserStore) -> None:
    user = store.create_user("Alice", "alice@x.com", 30.0)  # type: ignore[arg-type]
    assert user.age == 30
    assert isinstance(user.age, int)

    patched = store.patch_user(user.id, {"age": 31.0})
    assert patched.age == 31
    assert isinstance(patched.age, int)


def test_ids_are_unique_across_deletions(store: UserStore) -> None:
    seen = set()
    for index in range(50):
        user = store.create_user("Alice", "alice@x.com", 30)
        assert user.id not in seen
        seen.add(user.id)
        store.delete_user(user.id)

    assert len(store) == 0
