import csv
import datetime
import os

import pandas as pd
from colorama import Fore, Style, init

from calculate import calculate_average_utilization
from filter import get_migration_state
from utils import color_text

init(autoreset=True, strip=False)

MIGRATION_LOG_HEADER = ["Time", "Event", "VM ID", "From PM", "To PM", "Duration"]


def create_log_folder(logs_folder_path):
    current_datetime = datetime.datetime.now()
    date_time_string = current_datetime.strftime("%Y-%m-%d_%H:%M:%S")
    log_folder_name = f"log_{date_time_string}"
    log_folder_path = os.path.join(logs_folder_path, log_folder_name)
    os.makedirs(log_folder_path, exist_ok=True)
    return log_folder_path


def create_migration_log_file(log_folder_path):
    migration_log_file = os.path.join(log_folder_path, "migrations.csv")
    with open(migration_log_file, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(MIGRATION_LOG_HEADER)
    return migration_log_file


def log_event(time, message, color=None, print_to_console=True):
    if not print_to_console:
        return
    line = f"# {time:.2f}: {message}"
    print(color_text(line, color) if color else line)


def log_migration(migration_log_file, time, event, vm, from_pm, to_pm, duration):
    if not migration_log_file:
        return
    with open(migration_log_file, "a", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([time, event, vm["id"], from_pm, to_pm, duration])


def log_initial_physical_machines(pms, print_to_console=True):
    if not print_to_console:
        return
    for pm_id, pm in pms.items():
        print(
            f"# Created PM {pm_id} with {pm['capacity']['pe_mips']:.0f} MIPS x {pm['capacity']['pes']} PEs ({pm['capacity']['mips']:.0f} total MIPS), RAM {pm['capacity']['ram']}, BW {pm['capacity']['bw']}"
        )


def log_host_allocation(time, pm, print_to_console=True):
    log_event(
        time,
        f"PM {pm['id']} allocated {pm['s']['allocated_mips']:.2f} MIPS from {pm['capacity']['mips']:.2f} total capacity",
        print_to_console=print_to_console,
    )


def log_vm_allocation(time, vm, pm, print_to_console=True):
    if not print_to_console:
        return
    allocated_mips = pm["allocation"].get(vm["id"], 0.0)
    reduction = ""
    if get_migration_state(vm, pm["id"]) == "out":
        reduction = " - reduction due to migration overhead"
    log_event(
        time,
        f"VM {vm['id']} in PM {pm['id']}: total allocated {allocated_mips:.0f} MIPS (divided by {vm['requested']['pes']} PEs){reduction}",
        print_to_console=print_to_console,
    )


def history_to_dataframe(pm):
    return pd.DataFrame(
        pm["history"],
        columns=["time", "requested_mips", "allocated_mips", "utilization", "active"],
    )


def log_host_history(pm, log_folder_path):
    history_file = os.path.join(log_folder_path, f"host_{pm['id']}_history.csv")
    history_to_dataframe(pm).to_csv(history_file, index=False)
    return history_file


def log_final_summary(
    pms, finished_vms, num_migrations, clock, log_folder_path=None, print_to_console=True
):
    lines = [f"Simulation finished at time {clock:.2f}"]
    lines.append(f"Number of VM migrations: {num_migrations}")
    lines.append(f"Finished VMs: {len(finished_vms)}")
    for pm_id, pm in pms.items():
        if pm["history_enabled"]:
            average_utilization = calculate_average_utilization(pm["history"]) * 100
            lines.append(f"PM {pm_id} average CPU utilization: {average_utilization:.2f}%")
        if pm["s"]["consolidation_candidate"]:
            lines.append(f"PM {pm_id} can be powered off (no VMs left after consolidation)")

    if print_to_console:
        print(f"\n{Fore.GREEN}{Style.BRIGHT}{lines[0]}{Style.RESET_ALL}")
        for line in lines[1:]:
            print(line)

    if log_folder_path:
        log_file_path = os.path.join(log_folder_path, "final_summary.log")
        with open(log_file_path, "a") as log_file:
            log_file.write("\n".join(lines) + "\n")
    return lines
