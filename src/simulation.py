from types import MappingProxyType

from colorama import Fore

from algorithms import vm_fits_on_pm
from allocation import allocate_vm_on_pm, deallocate_vm_from_pm
from calculate import (
    allocate_time_shared,
    calculate_completion_time,
    calculate_placement_mips,
    calculate_requested_mips,
    execute_workload,
    is_workload_finished,
    record_history,
)
from check import (
    ConfigurationError,
    check_migration_correctness,
    check_migration_settings,
    check_overload,
    check_reservations,
    check_unique_residency,
)
from events import (
    MIGRATION_FINISH,
    MIGRATION_START,
    TICK,
    UTILIZATION_UPDATE,
    VM_CREATE,
    VM_DESTROY,
    EventQueue,
)
from filter import is_vm_migrating
from listeners import (
    ON_CLOCK_TICK,
    ON_VM_CREATED,
    ON_VM_CREATION_FAILED,
    ON_VM_DESTROYED,
    ON_VM_UPDATE,
    ON_VMS_CREATED,
    add_listener,
    create_listeners,
    notify_listeners,
    remove_listener,
)
from log import (
    create_migration_log_file,
    history_to_dataframe,
    log_event,
    log_final_summary,
    log_host_history,
)
from migration import begin_migration, cancel_migration, finish_migration
from policy import (
    evaluate_pms,
    find_host_for_vm,
    set_over_utilization_threshold,
    set_under_utilization_threshold,
)
from weights import migration

try:
    profile  # type: ignore
except NameError:

    def profile(func):
        return func


class Simulation:
    """
    Simulation context: the event queue and clock, the hosts and VMs, the
    migration policy, the listeners and the output settings.

    Every state change happens inside an event handler dispatched by `run`.
    """

    def __init__(
        self,
        pms,
        policy,
        scheduling_interval=1.0,
        bandwidth_percent=migration["bandwidth_percent"],
        cpu_overhead=migration["cpu_overhead"],
        vm_creation_retries=None,
        check_invariants=True,
        print_to_console=False,
        log_folder_path=None,
        start_time=0.0,
    ):
        if not pms:
            raise ConfigurationError("At least one host is required.")
        check_migration_settings(
            bandwidth_percent, cpu_overhead, policy["host_search_retry_delay"]
        )
        if vm_creation_retries is None and policy["host_search_retry_delay"] == 0:
            raise ConfigurationError(
                "Unbounded VM creation retries need a positive host search retry delay."
            )

        self.queue = EventQueue(start_time)
        self.pms = pms
        self.vms = {}  # Every submitted VM, by ID
        self.pending_vms = {}  # Submitted, waiting for a host
        self.active_vms = {}  # Placed on a host
        self.finished_vms = []
        self.failed_vms = []
        self.policy = policy
        self.listeners = create_listeners()
        self.settings = {
            "scheduling_interval": scheduling_interval,
            "bandwidth_percent": bandwidth_percent,
            "cpu_overhead": cpu_overhead,
            "vm_creation_retries": vm_creation_retries,
            "check_invariants": check_invariants,
        }
        self.print_to_console = print_to_console
        self.log_folder_path = log_folder_path
        self.migration_log_file = (
            create_migration_log_file(log_folder_path) if log_folder_path else None
        )

        self.creation_events = {}  # VM ID -> pending VM_CREATE event
        self.migration_events = {}  # VM ID -> pending MIGRATION_FINISH event
        self.tick_event = None
        self.completion_event = None
        self.awaiting_vms_created = False

        self.queue.register(TICK, self.process_tick)
        self.queue.register(VM_CREATE, self.process_vm_create)
        self.queue.register(VM_DESTROY, self.process_vm_destroy)
        self.queue.register(MIGRATION_START, self.process_migration_start)
        self.queue.register(MIGRATION_FINISH, self.process_migration_finish)
        self.queue.register(UTILIZATION_UPDATE, self.process_utilization_update)

    @property
    def clock(self):
        return self.queue.clock

    # Caller interface

    def add_listener(self, kind, listener):
        return add_listener(self.listeners, kind, listener)

    def remove_listener(self, kind, listener):
        return remove_listener(self.listeners, kind, listener)

    def submit_vm(self, vm, delay=0.0):
        if vm["id"] in self.vms:
            raise ValueError(f"VM {vm['id']} was already submitted.")
        vm["submit_time"] = self.clock + delay
        self.vms[vm["id"]] = vm
        self.pending_vms[vm["id"]] = vm
        self.awaiting_vms_created = True
        self.creation_events[vm["id"]] = self.queue.schedule(
            VM_CREATE, self.clock + delay, vm=vm["id"]
        )
        return self.creation_events[vm["id"]]

    def submit_vm_list(self, vms, delay=0.0):
        return [self.submit_vm(vm, delay) for vm in vms]

    def destroy_vm(self, vm_id, delay=0.0):
        if vm_id not in self.vms:
            raise ValueError(f"Unknown VM {vm_id}.")
        return self.queue.schedule(VM_DESTROY, self.clock + delay, vm=vm_id)

    def request_migration(self, vm_id, pm_id, delay=0.0):
        if vm_id not in self.vms:
            raise ValueError(f"Unknown VM {vm_id}.")
        if pm_id not in self.pms:
            raise ValueError(f"Unknown PM {pm_id}.")
        return self.queue.schedule(MIGRATION_START, self.clock + delay, vm=vm_id, pm=pm_id)

    def set_over_utilization_threshold(self, over_threshold):
        set_over_utilization_threshold(self.policy, over_threshold)

    def set_under_utilization_threshold(self, under_threshold):
        set_under_utilization_threshold(self.policy, under_threshold)

    def get_host_history(self, pm_id):
        return tuple(MappingProxyType(dict(entry)) for entry in self.pms[pm_id]["history"])

    def get_host_history_dataframe(self, pm_id):
        return history_to_dataframe(self.pms[pm_id])

    def get_finished_vms(self):
        return tuple(self.finished_vms)

    def run(self, until=None):
        """Dispatch events until the queue is empty or the next one is past `until`."""
        self.ensure_tick()
        while True:
            next_time = self.queue.peek_time()
            if next_time is None or (until is not None and next_time > until):
                break
            self.queue.advance()
            self.schedule_next_completion()
        return self.clock

    def write_logs(self):
        if self.log_folder_path:
            for pm in self.pms.values():
                if pm["history_enabled"]:
                    log_host_history(pm, self.log_folder_path)
        return log_final_summary(
            self.pms,
            self.finished_vms,
            self.policy["migrations"],
            self.clock,
            self.log_folder_path,
            self.print_to_console,
        )

    # Host processing

    @profile
    def update_pm_processing(self, pm):
        now = self.clock
        for vm_id in pm["vms"]:
            execute_workload(self.vms[vm_id], now)
        allocate_time_shared(pm, self.vms, now, self.settings["cpu_overhead"])
        record_history(pm, now)

    def update_all_pms(self):
        for pm_id in sorted(self.pms):
            self.update_pm_processing(self.pms[pm_id])
        for pm_id in sorted(self.pms):
            pm = self.pms[pm_id]
            for vm_id in list(pm["vms"]):
                notify_listeners(
                    self.listeners, ON_VM_UPDATE, self.clock, self.vms[vm_id], source_pm=pm
                )

    def ensure_tick(self):
        interval = self.settings["scheduling_interval"]
        if interval is None or interval <= 0:
            return
        if self.tick_event is None and self.active_vms:
            self.tick_event = self.queue.schedule(TICK, self.clock + interval)

    def schedule_next_completion(self):
        completion_times = []
        for vm in self.active_vms.values():
            completion_time = calculate_completion_time(vm, self.clock)
            if completion_time is not None:
                completion_times.append(max(completion_time, self.clock))
        earliest = min(completion_times, default=None)

        current = self.completion_event
        if current is not None and not current["dispatched"] and current["time"] == earliest:
            return
        self.queue.cancel(current)
        self.completion_event = None
        if earliest is not None:
            self.completion_event = self.queue.schedule(UTILIZATION_UPDATE, earliest)

    def run_invariant_checks(self):
        check_overload(self.pms)
        check_reservations(self.pms, self.vms)
        check_migration_correctness(self.vms)
        check_unique_residency(self.pms, self.vms)

    # Event handlers

    def process_tick(self, event):
        self.tick_event = None
        self.update_all_pms()
        self.destroy_finished_vms()
        evaluate_pms(self)
        if self.settings["check_invariants"]:
            self.run_invariant_checks()
        # Runs after the policy so threshold changes apply from the next tick
        notify_listeners(self.listeners, ON_CLOCK_TICK, self.clock)
        self.ensure_tick()

    def process_utilization_update(self, event):
        self.completion_event = None
        self.update_all_pms()
        self.destroy_finished_vms()

    def process_vm_create(self, event):
        now = self.clock
        vm = self.vms[event["vm"]]
        self.creation_events.pop(vm["id"], None)
        vm["creation_attempts"] += 1
        calculate_placement_mips(vm)

        pm_id = find_host_for_vm(self, vm)
        if pm_id == -1:
            self.handle_vm_creation_failure(vm)
            self.notify_vms_created_if_done()
            return

        pm = self.pms[pm_id]
        # First evaluation of the utilization models happens on creation
        calculate_requested_mips(vm, now)
        allocate_vm_on_pm(vm, pm)
        vm["created_time"] = now
        vm["workload"]["last_update"] = now
        del self.pending_vms[vm["id"]]
        self.active_vms[vm["id"]] = vm
        self.update_pm_processing(pm)

        log_event(
            now,
            f"VM {vm['id']} created on PM {pm_id} ({vm['requested']['pes']} PEs, {vm['s']['cpu'] * 100:.0f}% CPU)",
            Fore.GREEN,
            self.print_to_console,
        )
        notify_listeners(self.listeners, ON_VM_CREATED, now, vm, target_pm=pm)
        self.ensure_tick()
        self.notify_vms_created_if_done()

    def handle_vm_creation_failure(self, vm):
        now = self.clock
        notify_listeners(self.listeners, ON_VM_CREATION_FAILED, now, vm)
        retries = self.settings["vm_creation_retries"]
        if retries is not None and vm["creation_attempts"] > retries:
            del self.pending_vms[vm["id"]]
            self.failed_vms.append(vm)
            log_event(
                now,
                f"VM {vm['id']} could not be created after {vm['creation_attempts']} attempts",
                Fore.RED,
                self.print_to_console,
            )
            return

        retry_time = now + self.policy["host_search_retry_delay"]
        self.creation_events[vm["id"]] = self.queue.schedule(
            VM_CREATE, retry_time, vm=vm["id"]
        )
        log_event(
            now,
            f"No suitable host for VM {vm['id']}, retrying at {retry_time:.2f}",
            Fore.YELLOW,
            self.print_to_console,
        )

    def notify_vms_created_if_done(self):
        if self.awaiting_vms_created and not self.pending_vms:
            self.awaiting_vms_created = False
            notify_listeners(self.listeners, ON_VMS_CREATED, self.clock)

    def process_vm_destroy(self, event):
        self.destroy_vm_now(self.vms[event["vm"]])

    def destroy_vm_now(self, vm):
        now = self.clock
        if vm["id"] not in self.pending_vms and vm["id"] not in self.active_vms:
            return False

        pm = None
        if vm["id"] in self.pending_vms:
            self.queue.cancel(self.creation_events.pop(vm["id"], None))
            del self.pending_vms[vm["id"]]
        else:
            pm = self.pms[vm["host"]]
            # Account the work done so far before the VM leaves
            self.update_pm_processing(pm)
            cancel_migration(self, vm)
            deallocate_vm_from_pm(vm, pm)
            del self.active_vms[vm["id"]]
            self.finished_vms.append(vm)
            self.update_pm_processing(pm)

        vm["destroyed_time"] = now
        log_event(
            now,
            f"VM {vm['id']} destroyed" + (f" on PM {pm['id']}" if pm else " before creation"),
            Fore.BLUE,
            self.print_to_console,
        )
        notify_listeners(self.listeners, ON_VM_DESTROYED, now, vm, source_pm=pm)

        if not self.active_vms:
            self.queue.cancel(self.tick_event)
            self.tick_event = None
        self.notify_vms_created_if_done()
        return True

    def destroy_finished_vms(self):
        finished = [vm for vm in self.active_vms.values() if is_workload_finished(vm)]
        for vm in finished:
            self.destroy_vm_now(vm)

    def process_migration_start(self, event):
        vm = self.vms[event["vm"]]
        target_pm = self.pms[event["pm"]]
        if vm["host"] == -1 or is_vm_migrating(vm) or vm["host"] == target_pm["id"]:
            log_event(
                self.clock,
                f"Migration of VM {vm['id']} to PM {target_pm['id']} skipped: VM not movable",
                Fore.YELLOW,
                self.print_to_console,
            )
            return None
        if not vm_fits_on_pm(vm, target_pm):
            log_event(
                self.clock,
                f"Migration of VM {vm['id']} skipped: PM {target_pm['id']} cannot admit it",
                Fore.YELLOW,
                self.print_to_console,
            )
            return None
        return begin_migration(self, vm, self.pms[vm["host"]], target_pm)

    def process_migration_finish(self, event):
        return finish_migration(self, event)
