from algorithms import vm_fits_on_pm
from check import CapacityError
from weights import resources


def allocate_vm_on_pm(vm, pm, use_reservation=False):
    """
    Make `vm` resident on `pm`, taking RAM/BW/storage from the host pools.
    With `use_reservation` the capacity comes out of an inbound migration
    reservation made earlier for this VM.
    """
    if vm["host"] != -1:
        raise ValueError(f"VM {vm['id']} is already resident on PM {vm['host']}.")

    if use_reservation:
        if vm["id"] not in pm["migrating_in"]:
            raise CapacityError(f"PM {pm['id']} holds no reservation for VM {vm['id']}.")
        release_reservation(vm, pm)
    if not vm_fits_on_pm(vm, pm):
        raise CapacityError(
            f"VM {vm['id']} does not fit on PM {pm['id']}: requested {vm['requested']}, free {describe_free_capacity(pm)}."
        )

    for resource in resources:
        pm["resources"][resource]["allocated"] += vm["requested"][resource]
    pm["vms"].append(vm["id"])
    pm["s"]["consolidation_candidate"] = False
    vm["host"] = pm["id"]


def deallocate_vm_from_pm(vm, pm):
    if vm["id"] not in pm["vms"]:
        raise ValueError(f"VM {vm['id']} is not resident on PM {pm['id']}.")

    for resource in resources:
        pool = pm["resources"][resource]
        pool["allocated"] = max(pool["allocated"] - vm["requested"][resource], 0)
    pm["vms"].remove(vm["id"])
    pm["allocation"].pop(vm["id"], None)
    vm["host"] = -1
    vm["s"]["allocated_mips"] = 0.0


def reserve_for_migration(vm, pm):
    if not vm_fits_on_pm(vm, pm):
        raise CapacityError(
            f"PM {pm['id']} cannot admit VM {vm['id']}: requested {vm['requested']}, free {describe_free_capacity(pm)}."
        )
    for resource in resources:
        pm["resources"][resource]["reserved"] += vm["requested"][resource]
    pm["migrating_in"].append(vm["id"])
    pm["s"]["consolidation_candidate"] = False


def release_reservation(vm, pm):
    if vm["id"] not in pm["migrating_in"]:
        return False
    for resource in resources:
        pool = pm["resources"][resource]
        pool["reserved"] = max(pool["reserved"] - vm["requested"][resource], 0)
    pm["migrating_in"].remove(vm["id"])
    return True


def describe_free_capacity(pm):
    return {
        resource: pm["resources"][resource]["capacity"]
        - pm["resources"][resource]["allocated"]
        - pm["resources"][resource]["reserved"]
        for resource in resources
    }
