from colorama import Fore

from algorithms import get_host_selection_policy, get_vm_selection_policy
from calculate import calculate_pm_utilization_after_migrations
from check import check_thresholds
from filter import (
    filter_candidate_pms,
    get_vms_on_pm,
    is_pm_empty,
    is_pm_overloaded,
    is_pm_underloaded,
    sort_key_vm_utilization,
)
from listeners import ON_CONSOLIDATION_CANDIDATE, notify_listeners
from log import log_event
from migration import begin_migration
from weights import resources

try:
    profile  # type: ignore
except NameError:

    def profile(func):
        return func


def create_migration_policy(
    under_threshold,
    over_threshold,
    vm_selection="minimum_utilization",
    host_selection="best_fit",
    host_search_retry_delay=60.0,
):
    check_thresholds(under_threshold, over_threshold)

    return {
        "under_threshold": under_threshold,
        "over_threshold": over_threshold,
        "vm_selection": vm_selection,
        "host_selection": host_selection,
        "select_vm": get_vm_selection_policy(vm_selection),
        "select_host": get_host_selection_policy(host_selection),
        "host_search_retry_delay": host_search_retry_delay,
        "migrations": 0,  # Number of migrations started so far
    }


def set_over_utilization_threshold(policy, over_threshold):
    check_thresholds(policy["under_threshold"], over_threshold)
    policy["over_threshold"] = over_threshold


def set_under_utilization_threshold(policy, under_threshold):
    check_thresholds(under_threshold, policy["over_threshold"])
    policy["under_threshold"] = under_threshold


def classify_pm(pm, vms, policy):
    if is_pm_overloaded(pm, vms, policy["over_threshold"]):
        state = "over"
    elif is_pm_underloaded(pm, vms, policy["under_threshold"]):
        state = "under"
    else:
        state = "normal"
    pm["s"]["state"] = state
    return state


def find_host_for_vm(sim, vm, excluded_pm_ids=(), planned=None):
    candidate_pms = filter_candidate_pms(sim.pms, set(excluded_pm_ids))
    return sim.policy["select_host"](
        vm, candidate_pms, sim.vms, sim.policy["over_threshold"], planned
    )


def defer_host_search(sim, pm, reason):
    pm["s"]["retry_at"] = sim.clock + sim.policy["host_search_retry_delay"]
    log_event(
        sim.clock,
        f"{reason} on PM {pm['id']}, retrying at {pm['s']['retry_at']:.2f}",
        Fore.YELLOW,
        sim.print_to_console,
    )


def add_to_plan(planned, pm_id, vm):
    plan = planned.setdefault(pm_id, {"mips": 0.0, **{r: 0 for r in resources}})
    plan["mips"] += vm["s"]["requested_mips"]
    for resource in resources:
        plan[resource] += vm["requested"][resource]


def handle_overloaded_pm(sim, pm, overloaded_pm_ids):
    """Move VMs off `pm` until it is back under the over threshold."""
    policy = sim.policy
    num_started = 0
    while is_pm_overloaded(pm, sim.vms, policy["over_threshold"]):
        vm_id = policy["select_vm"](pm, sim.vms)
        if vm_id == -1:
            break

        vm = sim.vms[vm_id]
        target_pm_id = find_host_for_vm(sim, vm, overloaded_pm_ids | {pm["id"]})
        if target_pm_id == -1:
            defer_host_search(sim, pm, f"No suitable host for VM {vm_id}")
            break

        begin_migration(sim, vm, pm, sim.pms[target_pm_id])
        num_started += 1
    return num_started


def handle_underloaded_pm(sim, pm, excluded_pm_ids):
    """
    Try to evacuate every VM of an underloaded host.

    Destinations are planned for all VMs first, with the capacity taken by
    earlier picks counted against later ones. Migrations start only if every
    VM found a destination; otherwise the host is left untouched.
    Hosts with inbound migrations are never evacuated.
    Returns the IDs of the destination hosts, or None when nothing moved.
    """
    if pm["migrating_in"]:
        return None

    vms_to_move = sorted(
        get_vms_on_pm(pm, sim.vms, include_migrating=False), key=sort_key_vm_utilization
    )

    planned = {}
    placements = []
    for vm in vms_to_move:
        target_pm_id = find_host_for_vm(sim, vm, excluded_pm_ids | {pm["id"]}, planned)
        if target_pm_id == -1:
            defer_host_search(sim, pm, f"Consolidation failed for VM {vm['id']}")
            return None
        add_to_plan(planned, target_pm_id, vm)
        placements.append((vm, sim.pms[target_pm_id]))

    for vm, target_pm in placements:
        begin_migration(sim, vm, pm, target_pm)

    pm["s"]["consolidation_candidate"] = True
    log_event(
        sim.clock,
        f"PM {pm['id']} is under utilized, all its VMs are migrating out",
        Fore.MAGENTA,
        sim.print_to_console,
    )
    notify_listeners(sim.listeners, ON_CONSOLIDATION_CANDIDATE, sim.clock, source_pm=pm)
    return {target_pm["id"] for _, target_pm in placements}


@profile
def evaluate_pms(sim):
    """
    Run one policy round: classify every host, relieve the overloaded ones,
    then consolidate the underloaded ones starting from the least utilized.
    Hosts waiting for a host search retry are classified but left alone.
    """
    now = sim.clock
    policy = sim.policy
    for pm in sim.pms.values():
        classify_pm(pm, sim.vms, policy)

    overloaded_pm_ids = {pm_id for pm_id, pm in sim.pms.items() if pm["s"]["state"] == "over"}
    for pm_id in sorted(overloaded_pm_ids):
        pm = sim.pms[pm_id]
        if now < pm["s"]["retry_at"]:
            continue
        handle_overloaded_pm(sim, pm, overloaded_pm_ids)

    underloaded_pms = sorted(
        [pm for pm in sim.pms.values() if pm["s"]["state"] == "under"],
        key=lambda pm: (calculate_pm_utilization_after_migrations(pm, sim.vms), pm["id"]),
    )
    # Evacuated hosts and idle hosts never receive consolidated VMs
    excluded_pm_ids = set(overloaded_pm_ids)
    excluded_pm_ids.update(pm_id for pm_id, pm in sim.pms.items() if is_pm_empty(pm))
    # Hosts receiving VMs, including from the overload phase above, stay put
    destination_pm_ids = {pm_id for pm_id, pm in sim.pms.items() if pm["migrating_in"]}
    for pm in underloaded_pms:
        if now < pm["s"]["retry_at"] or pm["id"] in destination_pm_ids:
            continue
        destinations = handle_underloaded_pm(sim, pm, excluded_pm_ids)
        if destinations is not None:
            excluded_pm_ids.add(pm["id"])
            destination_pm_ids.update(destinations)

    return policy["migrations"]
