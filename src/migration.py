from colorama import Fore

from allocation import (
    allocate_vm_on_pm,
    deallocate_vm_from_pm,
    release_reservation,
    reserve_for_migration,
)
from calculate import calculate_migration_time
from events import MIGRATION_FINISH
from filter import is_vm_migrating
from listeners import ON_MIGRATION_FINISH, ON_MIGRATION_START, notify_listeners
from log import log_event, log_migration
from vm_generator import create_migration_state


def begin_migration(sim, vm, source_pm, target_pm):
    """
    Start the live migration of `vm` from `source_pm` to `target_pm`.

    The target capacity is reserved right away, so a rejected admission
    raises CapacityError before any state changes. The VM keeps running on
    the source, with the CPU overhead applied, until the finish event.
    Returns the migration duration.
    """
    if vm["host"] != source_pm["id"]:
        raise ValueError(f"VM {vm['id']} is not resident on PM {source_pm['id']}.")
    if is_vm_migrating(vm):
        raise ValueError(
            f"VM {vm['id']} is already migrating to PM {vm['migration']['to_pm']}."
        )
    if target_pm["id"] == source_pm["id"]:
        raise ValueError(f"VM {vm['id']} cannot migrate to its own PM {source_pm['id']}.")

    reserve_for_migration(vm, target_pm)

    now = sim.clock
    migration_time = calculate_migration_time(
        vm, target_pm, sim.settings["bandwidth_percent"]
    )
    vm["migration"] = create_migration_state(
        source_pm["id"], target_pm["id"], now, migration_time
    )
    sim.migration_events[vm["id"]] = sim.queue.schedule(
        MIGRATION_FINISH, now + migration_time, vm=vm["id"], pm=target_pm["id"]
    )

    # Apply the overhead to the VM share on the source host
    sim.update_pm_processing(source_pm)
    sim.policy["migrations"] += 1

    log_event(
        now,
        f"Migration of VM {vm['id']} from PM {source_pm['id']} to PM {target_pm['id']} is started (expected duration {migration_time:.2f})",
        Fore.CYAN,
        sim.print_to_console,
    )
    log_migration(
        sim.migration_log_file,
        now,
        "start",
        vm,
        source_pm["id"],
        target_pm["id"],
        migration_time,
    )
    notify_listeners(
        sim.listeners, ON_MIGRATION_START, now, vm, source_pm, target_pm
    )
    return migration_time


def finish_migration(sim, event):
    vm = sim.vms[event["vm"]]
    source_pm = sim.pms[vm["migration"]["from_pm"]]
    target_pm = sim.pms[vm["migration"]["to_pm"]]
    sim.migration_events.pop(vm["id"], None)

    # Bring both hosts up to date before their VM sets change
    sim.update_pm_processing(source_pm)
    sim.update_pm_processing(target_pm)

    deallocate_vm_from_pm(vm, source_pm)
    allocate_vm_on_pm(vm, target_pm, use_reservation=True)

    now = sim.clock
    duration = now - vm["migration"]["start_time"]
    vm["migration"] = create_migration_state()

    sim.update_pm_processing(source_pm)
    sim.update_pm_processing(target_pm)

    log_event(
        now,
        f"Migration of VM {vm['id']} from PM {source_pm['id']} to PM {target_pm['id']} is finished",
        Fore.GREEN,
        sim.print_to_console,
    )
    log_migration(
        sim.migration_log_file, now, "finish", vm, source_pm["id"], target_pm["id"], duration
    )
    notify_listeners(
        sim.listeners, ON_MIGRATION_FINISH, now, vm, source_pm, target_pm
    )
    return duration


def cancel_migration(sim, vm):
    """Withdraw the pending finish event of `vm` and free its reserved capacity."""
    if not is_vm_migrating(vm):
        return False

    sim.queue.cancel(sim.migration_events.pop(vm["id"], None))
    target_pm = sim.pms[vm["migration"]["to_pm"]]
    release_reservation(vm, target_pm)

    log_event(
        sim.clock,
        f"Migration of VM {vm['id']} to PM {target_pm['id']} is cancelled",
        Fore.YELLOW,
        sim.print_to_console,
    )
    log_migration(
        sim.migration_log_file,
        sim.clock,
        "cancel",
        vm,
        vm["migration"]["from_pm"],
        target_pm["id"],
        sim.clock - vm["migration"]["start_time"],
    )
    vm["migration"] = create_migration_state()
    return True
