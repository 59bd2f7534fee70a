"""
Event queue and simulation clock.

Events are plain dictionaries ordered by (time, sequence number), so events
sharing a timestamp are dispatched in the order they were scheduled.
Cancelled events stay in the heap and are skipped when they reach the top.
"""
import heapq

TICK = "tick"
VM_CREATE = "vm_create"
VM_DESTROY = "vm_destroy"
MIGRATION_START = "migration_start"
MIGRATION_FINISH = "migration_finish"
UTILIZATION_UPDATE = "utilization_update"

EVENT_KINDS = (
    TICK,
    VM_CREATE,
    VM_DESTROY,
    MIGRATION_START,
    MIGRATION_FINISH,
    UTILIZATION_UPDATE,
)


class PastEventError(ValueError):
    pass


class EventQueue:
    def __init__(self, start_time=0.0):
        self.clock = start_time
        self.heap = []  # (time, counter, event)
        self.counter = 0  # Unique counter to break ties
        self.handlers = {}
        self.num_live_events = 0

    def __len__(self):
        return self.num_live_events

    def register(self, kind, handler):
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        self.handlers[kind] = handler

    def schedule(self, kind, time, vm=-1, pm=-1, data=None):
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        if time < self.clock:
            raise PastEventError(
                f"Cannot schedule {kind} at {time}: the clock is already at {self.clock}."
            )

        event = {
            "id": self.counter,
            "time": time,
            "kind": kind,
            "vm": vm,
            "pm": pm,
            "data": data if data is not None else {},
            "cancelled": False,
            "dispatched": False,
        }
        heapq.heappush(self.heap, (time, self.counter, event))
        self.counter += 1
        self.num_live_events += 1
        return event

    def cancel(self, event):
        if event is None or event["cancelled"] or event["dispatched"]:
            return False
        event["cancelled"] = True
        self.num_live_events -= 1
        return True

    def discard_cancelled(self):
        while self.heap and self.heap[0][2]["cancelled"]:
            heapq.heappop(self.heap)

    def peek_time(self):
        self.discard_cancelled()
        if not self.heap:
            return None
        return self.heap[0][0]

    def pop(self):
        self.discard_cancelled()
        if not self.heap:
            return None
        time, _, event = heapq.heappop(self.heap)
        self.num_live_events -= 1
        event["dispatched"] = True
        self.clock = time
        return event

    def advance(self):
        """Dispatch the earliest pending event and return it (None if empty)."""
        event = self.pop()
        if event is None:
            return None

        handler = self.handlers.get(event["kind"])
        if handler is None:
            raise ValueError(f"No handler registered for {event['kind']} events.")
        handler(event)
        return event
