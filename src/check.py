from weights import EPSILON, resources


class ConfigurationError(ValueError):
    pass


class CapacityError(ValueError):
    pass


def get_row_value(row, key, default=None):
    # Empty CSV cells are loaded as None
    value = row.get(key)
    return default if value is None else value


def check_positive(name, value):
    if value is None or value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}.")


def check_matching_lengths(**arrays):
    lengths = {name: len(values) for name, values in arrays.items()}
    if len(set(lengths.values())) > 1:
        described = ", ".join(f"{name}={length}" for name, length in lengths.items())
        raise ConfigurationError(f"The length of arrays must match: {described}.")


def check_host_table(host_rows):
    if not host_rows:
        raise ConfigurationError("At least one host is required.")
    seen_ids = set()
    for row in host_rows:
        for key in ("pes", "pe_mips", "ram", "bw", "storage"):
            check_positive(f"Host {row.get('id')} {key}", row.get(key))
        if row.get("id") is not None:
            if row["id"] in seen_ids:
                raise ConfigurationError(f"Duplicate host ID {row['id']}.")
            seen_ids.add(row["id"])


def check_vm_table(vm_rows):
    seen_ids = set()
    for row in vm_rows:
        for key in ("pes", "pe_mips", "ram", "bw", "storage"):
            check_positive(f"VM {row.get('id')} {key}", row.get(key))
        if row.get("length") is not None:
            check_positive(f"VM {row.get('id')} length", row["length"])
        initial_cpu = get_row_value(row, "initial_cpu", 1.0)
        max_cpu = get_row_value(row, "max_cpu", 1.0)
        if not 0.0 <= initial_cpu <= 1.0 or not 0.0 <= max_cpu <= 1.0:
            raise ConfigurationError(
                f"VM {row.get('id')} CPU utilization must be between 0 and 1."
            )
        if max_cpu < initial_cpu:
            raise ConfigurationError(
                f"VM {row.get('id')}: max CPU usage must be equal or greater than the initial CPU usage."
            )
        if row.get("id") is not None:
            if row["id"] in seen_ids:
                raise ConfigurationError(f"Duplicate VM ID {row['id']}.")
            seen_ids.add(row["id"])


def check_thresholds(under_threshold, over_threshold):
    for name, value in (("under", under_threshold), ("over", over_threshold)):
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(
                f"The {name} utilization threshold must be between 0 and 1, got {value}."
            )
    if under_threshold >= over_threshold:
        raise ConfigurationError(
            f"The under utilization threshold ({under_threshold}) must be lower than the over utilization threshold ({over_threshold})."
        )


def check_migration_settings(bandwidth_percent, cpu_overhead, retry_delay):
    if not 0.0 < bandwidth_percent <= 1.0:
        raise ConfigurationError(
            f"Bandwidth percent for migration must be in (0, 1], got {bandwidth_percent}."
        )
    if not 0.0 <= cpu_overhead < 1.0:
        raise ConfigurationError(
            f"Migration CPU overhead must be in [0, 1), got {cpu_overhead}."
        )
    if retry_delay is None or retry_delay < 0:
        raise ConfigurationError(
            f"Host search retry delay cannot be negative, got {retry_delay}."
        )


def check_overload(pms):
    for pm_id, pm in pms.items():
        if pm["s"]["allocated_mips"] > pm["capacity"]["mips"] + EPSILON:
            raise ValueError(
                f"PM {pm_id} is overloaded: allocated {pm['s']['allocated_mips']} MIPS, capacity {pm['capacity']['mips']} MIPS."
            )
        for pe in pm["pes"]:
            if pe["allocated"] > pe["capacity"] + EPSILON:
                raise ValueError(
                    f"PE {pe['id']} of PM {pm_id} is overloaded: {pe['allocated']}/{pe['capacity']} MIPS."
                )
        for resource in resources:
            pool = pm["resources"][resource]
            if pool["allocated"] + pool["reserved"] > pool["capacity"] + EPSILON:
                raise ValueError(
                    f"PM {pm_id} {resource} is overcommitted: allocated {pool['allocated']}, reserved {pool['reserved']}, capacity {pool['capacity']}."
                )


def check_reservations(pms, vms):
    for pm_id, pm in pms.items():
        for resource in resources:
            expected = sum(
                vms[vm_id]["requested"][resource] for vm_id in pm["migrating_in"]
            )
            reserved = pm["resources"][resource]["reserved"]
            if abs(reserved - expected) > EPSILON:
                raise ValueError(
                    f"PM {pm_id} reserves {reserved} {resource} but inbound migrations need {expected}."
                )


def check_migration_correctness(vms):
    for vm in vms.values():
        from_pm = vm["migration"]["from_pm"]
        to_pm = vm["migration"]["to_pm"]
        if (from_pm != -1 and to_pm == -1) or (from_pm == -1 and to_pm != -1):
            raise ValueError(
                f"VM {vm['id']} has an incorrect migration state: {vm['migration']}."
            )
        elif from_pm == to_pm and from_pm != -1:
            raise ValueError(f"VM {vm['id']} is migrating to the same PM {to_pm}.")
        elif from_pm != -1 and vm["host"] != from_pm:
            raise ValueError(
                f"VM {vm['id']} is migrating from PM {from_pm} but resides on PM {vm['host']}."
            )


def check_unique_residency(pms, vms):
    residency = {}
    for pm_id, pm in pms.items():
        for vm_id in pm["vms"]:
            if vm_id in residency:
                raise ValueError(
                    f"VM {vm_id} is resident on PM {residency[vm_id]} and PM {pm_id}."
                )
            residency[vm_id] = pm_id

    for vm_id, vm in vms.items():
        if vm["host"] != -1 and residency.get(vm_id) != vm["host"]:
            raise ValueError(
                f"VM {vm_id} points to PM {vm['host']} but is not in its VM list."
            )
