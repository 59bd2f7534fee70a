import numpy as np

from utilization import evaluate_utilization, peek_utilization
from weights import EPSILON

try:
    profile  # type: ignore
except NameError:

    def profile(func):
        return func


def calculate_requested_mips(vm, time):
    vm["s"]["cpu"] = evaluate_utilization(vm["utilization"]["cpu"], time)
    vm["s"]["ram"] = vm["requested"]["ram"] * evaluate_utilization(
        vm["utilization"]["ram"], time
    )
    vm["s"]["bw"] = vm["requested"]["bw"] * evaluate_utilization(
        vm["utilization"]["bw"], time
    )
    vm["s"]["requested_mips"] = vm["requested"]["mips"] * vm["s"]["cpu"]
    return vm["s"]["requested_mips"]


def calculate_placement_mips(vm):
    """Demand used to place a VM that does not run yet; its models are left untouched."""
    vm["s"]["cpu"] = peek_utilization(vm["utilization"]["cpu"])
    vm["s"]["ram"] = vm["requested"]["ram"] * peek_utilization(vm["utilization"]["ram"])
    vm["s"]["bw"] = vm["requested"]["bw"] * peek_utilization(vm["utilization"]["bw"])
    vm["s"]["requested_mips"] = vm["requested"]["mips"] * vm["s"]["cpu"]
    return vm["s"]["requested_mips"]


def distribute_to_pes(pm, total_mips):
    remaining = total_mips
    for pe in pm["pes"]:
        pe["allocated"] = min(pe["capacity"], remaining)
        remaining = max(remaining - pe["allocated"], 0.0)


@profile
def allocate_time_shared(pm, vms, time, cpu_overhead):
    """
    Share the host MIPS among its resident VMs.

    Every VM gets its full request when the requests fit the host capacity,
    otherwise all requests are scaled by the same factor. VMs migrating out
    of this host keep only (1 - cpu_overhead) of their share.
    """
    capacity = pm["capacity"]["mips"]
    requested = {vm_id: calculate_requested_mips(vms[vm_id], time) for vm_id in pm["vms"]}
    total_requested = sum(requested.values())

    scale = 1.0
    if total_requested > capacity:
        scale = capacity / total_requested

    allocation = {}
    for vm_id, requested_mips in requested.items():
        allocated_mips = requested_mips * scale
        if vms[vm_id]["migration"]["from_pm"] == pm["id"]:
            allocated_mips *= 1 - cpu_overhead
        allocation[vm_id] = allocated_mips
        vms[vm_id]["s"]["allocated_mips"] = allocated_mips

    total_allocated = min(sum(allocation.values()), capacity)
    pm["allocation"] = allocation
    pm["s"]["requested_mips"] = total_requested
    pm["s"]["allocated_mips"] = total_allocated
    pm["s"]["utilization"] = total_allocated / capacity
    distribute_to_pes(pm, total_allocated)
    return allocation


def record_history(pm, time):
    if not pm["history_enabled"]:
        return
    entry = {
        "time": time,
        "requested_mips": pm["s"]["requested_mips"],
        "allocated_mips": pm["s"]["allocated_mips"],
        "utilization": pm["s"]["utilization"],
        "active": bool(pm["vms"]),
    }
    # A recompute at the same time replaces the previous entry
    if pm["history"] and pm["history"][-1]["time"] == time:
        pm["history"][-1] = entry
    else:
        pm["history"].append(entry)


def calculate_free_resource(pm, resource):
    pool = pm["resources"][resource]
    return pool["capacity"] - pool["allocated"] - pool["reserved"]


def calculate_pm_load_mips(pm, vms):
    """MIPS the host will carry once its pending migrations complete."""
    load = 0.0
    for vm_id, allocated_mips in pm["allocation"].items():
        if vms[vm_id]["migration"]["from_pm"] != pm["id"]:
            load += allocated_mips
    for vm_id in pm["migrating_in"]:
        load += vms[vm_id]["s"]["requested_mips"]
    return load


def calculate_pm_utilization_after_migrations(pm, vms):
    return calculate_pm_load_mips(pm, vms) / pm["capacity"]["mips"]


def calculate_predicted_utilization(pm, vm, vms, planned_mips=0.0):
    load = calculate_pm_load_mips(pm, vms) + planned_mips + vm["s"]["requested_mips"]
    return load / pm["capacity"]["mips"]


def calculate_spare_mips(pm, vm, vms, planned_mips=0.0):
    load = calculate_pm_load_mips(pm, vms) + planned_mips + vm["s"]["requested_mips"]
    return pm["capacity"]["mips"] - load


def calculate_migration_time(vm, target_pm, bandwidth_percent):
    # RAM and BW must be expressed in the same data unit
    return vm["requested"]["ram"] / (target_pm["capacity"]["bw"] * bandwidth_percent)


def calculate_remaining_length(vm):
    if vm["workload"]["length"] is None:
        return None
    return max(vm["workload"]["length"] - vm["workload"]["executed"], 0.0)


def calculate_completion_time(vm, time):
    remaining = calculate_remaining_length(vm)
    if remaining is None or vm["s"]["allocated_mips"] <= EPSILON:
        return None
    return time + remaining / vm["s"]["allocated_mips"]


def execute_workload(vm, time):
    last_update = vm["workload"]["last_update"]
    if last_update is not None and time > last_update:
        vm["workload"]["executed"] += vm["s"]["allocated_mips"] * (time - last_update)
    vm["workload"]["last_update"] = time


def is_workload_finished(vm):
    remaining = calculate_remaining_length(vm)
    # Relative tolerance so long workloads still finish at their predicted time
    return remaining is not None and remaining <= EPSILON * max(vm["workload"]["length"], 1.0)


def calculate_average_utilization(history):
    if not history:
        return 0.0
    return float(np.mean([entry["utilization"] for entry in history]))
