from hybrid_browser_agent.transcript import InMemoryTranscriptStore, TranscriptEntry


def test_in_memory_store_prunes_to_max_entries():
    store = InMemoryTranscriptStore(max_entries=3)
    for idx in range(5):
        store.add(TranscriptEntry(session_id="s1", role="user", content=f"entry-{idx}"))
    entries = store.get("s1")
    assert len(entries) == 3
    assert [entry.content for entry in entries] == ["entry-2", "entry-3", "entry-4"]


def test_sessions_are_isolated():
    store = InMemoryTranscriptStore()
    store.add(TranscriptEntry(session_id="a", role="user", content="hello"))
    store.add(TranscriptEntry(session_id="b", role="agent", content="done"))

    assert [entry.content for entry in store.get("a")] == ["hello"]
    assert store.get("missing") == []
