from calculate import (
    calculate_free_resource,
    calculate_predicted_utilization,
    calculate_spare_mips,
)
from check import ConfigurationError
from filter import (
    get_vms_on_pm,
    sort_key_vm_ram,
    sort_key_vm_utilization,
)
from weights import EPSILON, resources

try:
    profile  # type: ignore
except NameError:

    def profile(func):
        return func


def vm_fits_on_pm(vm, pm, planned=None):
    """Check PEs and free RAM/BW/storage, net of reservations and `planned` amounts."""
    planned = planned or {}
    if vm["requested"]["pes"] > pm["capacity"]["pes"]:
        return False
    if vm["requested"]["pe_mips"] > pm["capacity"]["pe_mips"]:
        return False
    for resource in resources:
        free = calculate_free_resource(pm, resource) - planned.get(resource, 0)
        if vm["requested"][resource] > free:
            return False
    return True


def vm_is_suitable_for_pm(vm, pm, vms, over_threshold, planned=None):
    planned = planned or {}
    if not vm_fits_on_pm(vm, pm, planned):
        return False
    predicted = calculate_predicted_utilization(pm, vm, vms, planned.get("mips", 0.0))
    return predicted <= over_threshold + EPSILON


def get_suitable_pms(vm, candidate_pms, vms, over_threshold, planned=None):
    planned = planned or {}
    return [
        pm
        for pm in candidate_pms
        if vm_is_suitable_for_pm(vm, pm, vms, over_threshold, planned.get(pm["id"]))
    ]


def planned_mips(planned, pm_id):
    return planned.get(pm_id, {}).get("mips", 0.0) if planned else 0.0


# VM selection: (pm, vms) -> vm_id, or -1 if no VM can be moved


def minimum_utilization(pm, vms):
    candidates = get_vms_on_pm(pm, vms, include_migrating=False)
    if not candidates:
        return -1
    return min(candidates, key=sort_key_vm_utilization)["id"]


def maximum_utilization(pm, vms):
    candidates = get_vms_on_pm(pm, vms, include_migrating=False)
    if not candidates:
        return -1
    return min(candidates, key=lambda vm: (-vm["s"]["cpu"], vm["id"]))["id"]


def minimum_migration_time(pm, vms):
    candidates = get_vms_on_pm(pm, vms, include_migrating=False)
    if not candidates:
        return -1
    return min(candidates, key=sort_key_vm_ram)["id"]


# Host selection: (vm, candidate_pms, vms, over_threshold, planned) -> pm_id, or -1


@profile
def best_fit(vm, candidate_pms, vms, over_threshold, planned=None):
    suitable_pms = get_suitable_pms(vm, candidate_pms, vms, over_threshold, planned)
    if not suitable_pms:
        return -1
    best_pm = min(
        suitable_pms,
        key=lambda pm: (
            calculate_spare_mips(pm, vm, vms, planned_mips(planned, pm["id"])),
            pm["id"],
        ),
    )
    return best_pm["id"]


def first_fit(vm, candidate_pms, vms, over_threshold, planned=None):
    suitable_pms = get_suitable_pms(vm, candidate_pms, vms, over_threshold, planned)
    if not suitable_pms:
        return -1
    return min(pm["id"] for pm in suitable_pms)


def worst_fit(vm, candidate_pms, vms, over_threshold, planned=None):
    suitable_pms = get_suitable_pms(vm, candidate_pms, vms, over_threshold, planned)
    if not suitable_pms:
        return -1
    worst_pm = min(
        suitable_pms,
        key=lambda pm: (
            -calculate_spare_mips(pm, vm, vms, planned_mips(planned, pm["id"])),
            pm["id"],
        ),
    )
    return worst_pm["id"]


VM_SELECTION_POLICIES = {
    "minimum_utilization": minimum_utilization,
    "maximum_utilization": maximum_utilization,
    "minimum_migration_time": minimum_migration_time,
}

HOST_SELECTION_POLICIES = {
    "best_fit": best_fit,
    "first_fit": first_fit,
    "worst_fit": worst_fit,
}


def get_vm_selection_policy(name):
    if name not in VM_SELECTION_POLICIES:
        raise ConfigurationError(
            f"Unknown VM selection policy '{name}'. Choose one of {sorted(VM_SELECTION_POLICIES)}."
        )
    return VM_SELECTION_POLICIES[name]


def get_host_selection_policy(name):
    if name not in HOST_SELECTION_POLICIES:
        raise ConfigurationError(
            f"Unknown host selection policy '{name}'. Choose one of {sorted(HOST_SELECTION_POLICIES)}."
        )
    return HOST_SELECTION_POLICIES[name]
