from collections import namedtuple
from copy import deepcopy
from types import MappingProxyType

ON_VM_CREATED = "vm_created"
ON_VMS_CREATED = "vms_created"
ON_VM_CREATION_FAILED = "vm_creation_failed"
ON_VM_DESTROYED = "vm_destroyed"
ON_VM_UPDATE = "vm_update"
ON_MIGRATION_START = "migration_start"
ON_MIGRATION_FINISH = "migration_finish"
ON_CLOCK_TICK = "clock_tick"
ON_CONSOLIDATION_CANDIDATE = "consolidation_candidate"

LISTENER_KINDS = (
    ON_VM_CREATED,
    ON_VMS_CREATED,
    ON_VM_CREATION_FAILED,
    ON_VM_DESTROYED,
    ON_VM_UPDATE,
    ON_MIGRATION_START,
    ON_MIGRATION_FINISH,
    ON_CLOCK_TICK,
    ON_CONSOLIDATION_CANDIDATE,
)

EventInfo = namedtuple("EventInfo", ["time", "vm", "source_pm", "target_pm"])


def create_listeners():
    return {kind: [] for kind in LISTENER_KINDS}


def add_listener(listeners, kind, listener):
    if kind not in listeners:
        raise ValueError(f"Unknown listener kind: {kind}")
    listeners[kind].append(listener)
    return listener


def remove_listener(listeners, kind, listener):
    if listener in listeners.get(kind, []):
        listeners[kind].remove(listener)
        return True
    return False


def snapshot(entity):
    if entity is None:
        return None
    return MappingProxyType(deepcopy(entity))


def notify_listeners(listeners, kind, time, vm=None, source_pm=None, target_pm=None):
    # Copy the list so a listener may remove itself while being called
    registered = list(listeners[kind])
    if not registered:
        return None

    info = EventInfo(time, snapshot(vm), snapshot(source_pm), snapshot(target_pm))
    for listener in registered:
        listener(info)
    return info
