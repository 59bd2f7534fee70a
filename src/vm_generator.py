from check import check_matching_lengths, check_vm_table, get_row_value
from data_generator import generate_unique_id
from utilization import (
    create_dynamic_utilization_model,
    create_full_utilization_model,
    linear_increment,
)


def create_migration_state(from_pm=-1, to_pm=-1, start_time=None, total_time=0.0):
    return {
        "from_pm": from_pm,
        "to_pm": to_pm,
        "start_time": start_time,
        "total_time": total_time,
    }


def create_vm(
    vm_id,
    pes,
    pe_mips,
    ram,
    bw,
    storage,
    cpu_model=None,
    ram_model=None,
    bw_model=None,
    length=None,
):
    new_vm = {
        "id": vm_id,
        "requested": {
            "pes": int(pes),
            "pe_mips": float(pe_mips),
            "mips": float(pes * pe_mips),
            "ram": ram,
            "bw": bw,
            "storage": storage,
        },
        "utilization": {
            "cpu": cpu_model if cpu_model is not None else create_full_utilization_model(),
            "ram": ram_model if ram_model is not None else create_full_utilization_model(),
            "bw": bw_model if bw_model is not None else create_full_utilization_model(),
        },
        "workload": {
            "length": length,  # Total MI to execute, None runs until destroyed
            "executed": 0.0,
            "last_update": None,
        },
        "host": -1,  # Not placed on any physical machine yet
        "migration": create_migration_state(),
        "s": {
            "cpu": 0.0,
            "ram": 0.0,
            "bw": 0.0,
            "requested_mips": 0.0,
            "allocated_mips": 0.0,
        },
        "submit_time": None,
        "created_time": None,
        "destroyed_time": None,
        "creation_attempts": 0,
    }
    return new_vm


def create_cpu_utilization_model(initial_cpu, max_cpu, cpu_increment):
    # Static usage unless there is room to grow towards the max
    initial_cpu = min(initial_cpu, 1.0)
    max_cpu = min(max_cpu, 1.0)
    if cpu_increment and initial_cpu < max_cpu:
        return create_dynamic_utilization_model(
            initial_cpu, linear_increment(cpu_increment), max_cpu
        )
    return create_dynamic_utilization_model(initial_cpu, None, max_cpu)


def build_vm_table(
    vm_pes, vm_mips, vm_ram, vm_bw, vm_storage, initial_cpu, max_cpu, cpu_increment, length
):
    """
    Build VM rows from per-VM arrays. `initial_cpu` may be a list (one value
    per VM) or a scalar shared by all VMs; `length` is per PE.
    """
    if not isinstance(initial_cpu, (list, tuple)):
        initial_cpu = [initial_cpu] * len(vm_pes)
    check_matching_lengths(VM_PES=vm_pes, VM_INITIAL_CPU_UTILIZATION=initial_cpu)

    return [
        {
            "id": index,
            "pes": pes,
            "pe_mips": vm_mips,
            "ram": vm_ram,
            "bw": vm_bw,
            "storage": vm_storage,
            "initial_cpu": cpu,
            "max_cpu": max_cpu,
            "cpu_increment": cpu_increment,
            "length": length * pes if length else None,
        }
        for index, (pes, cpu) in enumerate(zip(vm_pes, initial_cpu))
    ]


def generate_vms(vm_rows):
    check_vm_table(vm_rows)

    new_vms = []  # List to store new VMs
    existing_ids = {row["id"] for row in vm_rows if row.get("id") is not None}
    for row in vm_rows:
        vm_id = row.get("id")
        if vm_id is None:
            vm_id = generate_unique_id(existing_ids)
        cpu_model = create_cpu_utilization_model(
            get_row_value(row, "initial_cpu", 1.0),
            get_row_value(row, "max_cpu", 1.0),
            get_row_value(row, "cpu_increment", 0.0),
        )
        new_vm = create_vm(
            vm_id,
            row["pes"],
            row["pe_mips"],
            row["ram"],
            row["bw"],
            row["storage"],
            cpu_model=cpu_model,
            length=row.get("length"),
        )
        existing_ids.add(vm_id)
        new_vms.append(new_vm)

    return new_vms
