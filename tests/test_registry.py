from __future__ import annotations

import threading

from onboarding.registry import SessionRegistry, get_registry, reset_registry


def test_new_user_ids_are_unique_and_increasing() -> None:
    reg = SessionRegistry()
    ids = [reg.new_user().id for _ in range(5)]
    assert ids == [1, 2, 3, 4, 5]
    assert len(reg) == 5


def test_get_user_returns_same_aggregate() -> None:
    reg = SessionRegistry()
    user = reg.new_user()
    user.tracks = ["core"]

    assert reg.get_user(user.id) is user
    assert reg.get_user(user.id).tracks == ["core"]


def test_unknown_or_missing_id_is_none() -> None:
    reg = SessionRegistry()
    reg.new_user()
    assert reg.get_user(None) is None
    assert reg.get_user(999) is None


def test_concurrent_allocation_never_repeats_an_id() -> None:
    reg = SessionRegistry()
    seen = []
    lock = threading.Lock()

    def _alloc() -> None:
        for _ in range(200):
            uid = reg.new_user().id
            with lock:
                seen.append(uid)

    threads = [threading.Thread(target=_alloc) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 800
    assert len(set(seen)) == 800
    assert len(reg) == 800


def test_reset_registry_drops_users() -> None:
    user = get_registry().new_user()
    assert get_registry().get_user(user.id) is user

    reset_registry()
    assert get_registry().get_user(user.id) is None
    assert len(get_registry()) == 0
