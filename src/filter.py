from calculate import calculate_pm_utilization_after_migrations
from weights import EPSILON


def get_migration_state(vm, pm_id):
    if vm["migration"]["from_pm"] == -1:
        return "none"
    if vm["migration"]["from_pm"] == pm_id:
        return "out"
    if vm["migration"]["to_pm"] == pm_id:
        return "in"
    return "none"


def is_vm_migrating(vm):
    return vm["migration"]["from_pm"] != -1


def get_vms_on_pm(pm, vms, include_migrating=True):
    return [
        vms[vm_id]
        for vm_id in pm["vms"]
        if include_migrating or not is_vm_migrating(vms[vm_id])
    ]


def is_pm_overloaded(pm, vms, over_threshold):
    return calculate_pm_utilization_after_migrations(pm, vms) > over_threshold + EPSILON


def is_pm_underloaded(pm, vms, under_threshold):
    if not get_vms_on_pm(pm, vms, include_migrating=False):
        return False
    return calculate_pm_utilization_after_migrations(pm, vms) < under_threshold - EPSILON


def is_pm_empty(pm):
    return not pm["vms"] and not pm["migrating_in"]


def filter_candidate_pms(pms, excluded_pm_ids):
    return [pm for pm_id, pm in sorted(pms.items()) if pm_id not in excluded_pm_ids]


def sort_key_vm_utilization(vm):
    return (vm["s"]["cpu"], vm["id"])


def sort_key_vm_ram(vm):
    return (vm["requested"]["ram"], vm["id"])
