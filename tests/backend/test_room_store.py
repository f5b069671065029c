def test_poll_on_new_room_returns_no_other_peers(store):
    others, room_size = store.poll("fresh", "p1")
    assert others == []
    assert room_size == 1
    assert store.has_room("FRESH")


def test_room_ids_collide_case_insensitively(store):
    store.publish("abcd", "p1", "offer", "sdp-A")
    others, room_size = store.poll("ABCD", "p2")

    assert room_size == 2
    assert [p["id"] for p in others] == ["p1"]
    assert store.room_count() == 1


def test_offer_and_answer_are_visible_to_the_other_peer(store):
    store.publish("XYZ1", "P1", "offer", "sdp-A")
    store.publish("xyz1", "P2", "answer", "sdp-B")

    p2_view, _ = store.poll("xyz1", "P2")
    p1_view, _ = store.poll("XYZ1", "P1")

    assert p2_view[0]["id"] == "P1"
    assert p2_view[0]["offer"] == "sdp-A"
    assert p2_view[0]["answer"] is None
    assert p1_view[0]["id"] == "P2"
    assert p1_view[0]["answer"] == "sdp-B"


def test_repeated_offer_is_last_write_wins(store):
    store.publish("room", "p1", "offer", "first")
    store.publish("room", "p1", "offer", "renegotiated")

    others, _ = store.poll("room", "p2")
    assert others[0]["offer"] == "renegotiated"


def test_candidates_keep_publish_order_and_duplicates(store):
    for candidate in ["c1", "c2", "c3", "c2"]:
        store.publish("XYZ1", "P2", "candidate", candidate)

    others, _ = store.poll("XYZ1", "P1")
    assert others[0]["candidates"] == ["c1", "c2", "c3", "c2"]

    # A later poll still sees the full list
    store.publish("XYZ1", "P2", "candidate", "c4")
    others, _ = store.poll("XYZ1", "P1")
    assert others[0]["candidates"] == ["c1", "c2", "c3", "c2", "c4"]


def test_poll_result_is_a_snapshot(store):
    store.publish("room", "p1", "candidate", "c1")
    others, _ = store.poll("room", "p2")
    others[0]["candidates"].append("tampered")

    again, _ = store.poll("room", "p2")
    assert again[0]["candidates"] == ["c1"]


def test_unknown_signal_type_is_ignored_but_registers_peer(store):
    room_size = store.publish("room", "p1", "bye", {"x": 1})
    assert room_size == 1

    others, _ = store.poll("room", "p2")
    assert others == [
        {"id": "p1", "offer": None, "answer": None, "candidates": [], "lastSeen": others[0]["lastSeen"]}
    ]


def test_last_seen_is_reported_in_milliseconds(store, clock):
    store.poll("room", "p1")
    clock.advance(2.5)
    store.poll("room", "p1")

    others, _ = store.poll("room", "p2")
    assert others[0]["lastSeen"] == int(clock.now * 1000)


def test_reap_evicts_idle_peers_only(store, clock):
    store.publish("room", "idle", "offer", "sdp")
    clock.advance(200)
    store.poll("room", "active")
    clock.advance(150)

    peers_removed, rooms_removed = store.reap()

    assert (peers_removed, rooms_removed) == (1, 0)
    assert store.peer_ids("room") == ["active"]


def test_reap_at_exact_threshold_keeps_peer(store, clock):
    store.poll("room", "p1")
    clock.advance(300)
    assert store.reap() == (0, 0)


def test_reaped_room_is_recreated_empty(store, clock):
    store.publish("room", "p1", "offer", "sdp")
    store.publish("room", "p1", "candidate", "c1")
    clock.advance(301)

    assert store.reap() == (1, 1)
    assert not store.has_room("room")
    assert store.get_room("room") is None

    others, room_size = store.poll("room", "p2")
    assert others == []
    assert room_size == 1


def test_polling_keeps_a_peer_alive(store, clock):
    store.poll("room", "p1")
    for _ in range(5):
        clock.advance(250)
        store.poll("room", "p1")
        store.reap()
    assert store.peer_ids("room") == ["p1"]


def test_get_room_does_not_create_or_touch(store, clock):
    assert store.get_room("ghost") is None
    assert store.room_count() == 0

    store.poll("room", "p1")
    clock.advance(301)
    snapshot = store.get_room("room")
    assert snapshot["peer_ids"] == ["p1"]
    assert store.reap() == (1, 1)


def test_counts_span_rooms(store):
    store.poll("a", "p1")
    store.poll("a", "p2")
    store.poll("b", "p3")
    assert store.room_count() == 2
    assert store.peer_count() == 3
