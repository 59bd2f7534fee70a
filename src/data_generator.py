from check import check_host_table, check_matching_lengths, get_row_value
from weights import resources


def generate_unique_id(existing_ids):
    new_id = max(existing_ids, default=-1) + 1
    while new_id in existing_ids:
        new_id += 1
    return new_id


def create_pm(pm_id, pes, pe_mips, ram, bw, storage, history_enabled=False):
    capacity = {
        "pes": int(pes),
        "pe_mips": float(pe_mips),
        "mips": float(pes * pe_mips),
        "ram": ram,
        "bw": bw,
        "storage": storage,
    }

    pm = {
        "id": pm_id,
        "capacity": capacity,
        # One resource element per processing element
        "pes": [
            {"id": pe_id, "capacity": float(pe_mips), "allocated": 0.0}
            for pe_id in range(int(pes))
        ],
        "resources": {
            resource: {"capacity": capacity[resource], "allocated": 0, "reserved": 0}
            for resource in resources
        },
        "vms": [],  # Resident VM IDs, in arrival order
        "migrating_in": [],  # IDs of VMs with capacity reserved here
        "allocation": {},  # VM ID -> allocated MIPS
        "s": {
            "requested_mips": 0.0,
            "allocated_mips": 0.0,
            "utilization": 0.0,
            "state": "normal",
            "retry_at": 0.0,
            "consolidation_candidate": False,
        },
        "history_enabled": history_enabled,
        "history": [],
    }
    return pm


def build_host_table(host_pes, host_ram, host_mips, host_bw, host_storage):
    """
    Build host rows from per-host arrays (one entry per host) and shared scalars.
    `host_ram` may be a scalar, in which case every host gets the same amount.
    """
    if not isinstance(host_ram, (list, tuple)):
        host_ram = [host_ram] * len(host_pes)
    check_matching_lengths(HOST_PES=host_pes, HOST_RAM=host_ram)

    return [
        {
            "id": index,
            "pes": pes,
            "pe_mips": host_mips,
            "ram": ram,
            "bw": host_bw,
            "storage": host_storage,
        }
        for index, (pes, ram) in enumerate(zip(host_pes, host_ram))
    ]


def generate_pms(host_rows, history_enabled=False):
    check_host_table(host_rows)

    pms = {}
    # Generated IDs skip the explicit ones, wherever they appear in the table
    existing_ids = {row["id"] for row in host_rows if row.get("id") is not None}
    for row in host_rows:
        pm_id = row.get("id")
        if pm_id is None:
            pm_id = generate_unique_id(existing_ids)
            existing_ids.add(pm_id)
        pms[pm_id] = create_pm(
            pm_id,
            row["pes"],
            row["pe_mips"],
            row["ram"],
            row["bw"],
            row["storage"],
            history_enabled=bool(get_row_value(row, "history_enabled", history_enabled)),
        )
    return pms
