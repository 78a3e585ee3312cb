"""Tests for the event outbox."""

import tempfile
from pathlib import Path

from plungeheat.sync.queue import Outbox, OutboxMessage


def event(n: int) -> dict:
    return {"action": "new_session", "id": f"session-{n}", "duration": 60.0 * n}


class TestOutbox:
    """Tests for Outbox."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test_outbox.db"
        self.outbox = Outbox(db_path=self.db_path, warning_size=100)

    def teardown_method(self):
        """Clean up."""
        self.outbox.close()

    def test_enqueue_single_message(self):
        """Test enqueueing a single message."""
        count = self.outbox.enqueue([event(1)])

        assert count == 1
        assert self.outbox.size() == 1

    def test_enqueue_empty(self):
        assert self.outbox.enqueue([]) == 0
        assert self.outbox.is_empty()

    def test_enqueue_same_id_is_stored_once(self):
        """Test that a session queued twice before delivery is kept once."""
        self.outbox.enqueue([event(1)])

        count = self.outbox.enqueue([event(1)])

        assert count == 0
        assert self.outbox.size() == 1

    def test_dequeue_returns_oldest_first(self):
        """Test that dequeue returns messages in FIFO order."""
        self.outbox.enqueue([event(1), event(2)])

        pending = self.outbox.dequeue(batch_size=1)

        assert len(pending) == 1
        assert isinstance(pending[0], OutboxMessage)
        assert pending[0].payload["id"] == "session-1"
        assert pending[0].retry_count == 0

    def test_dequeue_does_not_remove(self):
        self.outbox.enqueue([event(1)])

        self.outbox.dequeue()

        assert self.outbox.size() == 1

    def test_dequeue_respects_batch_size(self):
        self.outbox.enqueue([event(n) for n in range(10)])

        assert len(self.outbox.dequeue(batch_size=3)) == 3

    def test_remove_messages(self):
        """Test removing delivered messages by id."""
        self.outbox.enqueue([event(1)])

        pending = self.outbox.dequeue(batch_size=1)
        removed = self.outbox.remove([m.id for m in pending])

        assert removed == 1
        assert self.outbox.is_empty()

    def test_remove_empty_list(self):
        assert self.outbox.remove([]) == 0

    def test_delivered_session_can_be_queued_again(self):
        self.outbox.enqueue([event(1)])
        self.outbox.remove([m.id for m in self.outbox.dequeue()])

        assert self.outbox.enqueue([event(1)]) == 1

    def test_increment_retry_count(self):
        self.outbox.enqueue([event(1)])
        ids = [m.id for m in self.outbox.dequeue()]

        self.outbox.increment_retry(ids)
        self.outbox.increment_retry(ids)

        assert self.outbox.dequeue()[0].retry_count == 2

    def test_count_stalled(self):
        """Test counting messages that keep failing delivery."""
        self.outbox.enqueue([event(1), event(2)])
        first = self.outbox.dequeue(batch_size=1)[0]
        for _ in range(3):
            self.outbox.increment_retry([first.id])

        assert self.outbox.count_stalled(min_retries=3) == 1
        assert self.outbox.count_stalled(min_retries=4) == 0
        assert self.outbox.size() == 2

    def test_over_warning_size_keeps_every_message(self, caplog):
        """Test that a large backlog is reported, never evicted."""
        outbox = Outbox(db_path=Path(self.temp_dir) / "small.db", warning_size=3)
        for n in range(5):
            outbox.enqueue([event(n)])

        assert outbox.size() == 5
        assert [m.payload["id"] for m in outbox.dequeue()] == [f"session-{n}" for n in range(5)]
        assert "undelivered messages" in caplog.text
        outbox.close()

    def test_messages_survive_restart(self):
        self.outbox.enqueue([event(1)])
        self.outbox.close()

        reopened = Outbox(db_path=self.db_path)
        assert reopened.dequeue()[0].payload == event(1)
        reopened.close()

    def test_clear(self):
        self.outbox.enqueue([event(n) for n in range(4)])

        assert self.outbox.clear() == 4
        assert self.outbox.is_empty()
