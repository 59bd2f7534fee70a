import argparse
import importlib.util
import os
import sys
import time

from colorama import Fore

from check import ConfigurationError, check_thresholds
from data_generator import build_host_table, generate_pms
from listeners import ON_MIGRATION_FINISH, ON_MIGRATION_START, ON_VMS_CREATED
from log import (
    create_log_folder,
    log_event,
    log_host_allocation,
    log_initial_physical_machines,
    log_vm_allocation,
)
from policy import create_migration_policy
from simulation import Simulation
from utils import color_text, load_host_table, load_vm_table
from vm_generator import build_vm_table, generate_vms

DEFAULT_CONFIG_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.py")


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_FILE, help="Path to the configuration file"
    )
    parser.add_argument("--hosts", help="Path to a CSV file with one host per row")
    parser.add_argument("--vms", help="Path to a CSV file with one VM per row")
    parser.add_argument("--until", type=float, help="Simulation time limit")
    return parser.parse_args(argv)


def load_config(config_file):
    # Dynamically import the config file
    spec = importlib.util.spec_from_file_location("config", config_file)
    config = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(config)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file {config_file} not found.")
    return config


def build_simulation(config, hosts_file=None, vms_file=None):
    """
    Create the hosts, the VMs and the migration policy described by `config`
    and return the simulation with the VMs already submitted.

    While the initial VMs are being placed the over threshold is raised by
    INITIAL_OVER_UTILIZATION_MARGIN, so placement can fill hosts a bit more
    than the policy later tolerates. A listener restores the configured
    threshold once every VM is created and then removes itself.
    """
    hosts_file = hosts_file or getattr(config, "HOSTS_FILE", None)
    vms_file = vms_file or getattr(config, "VMS_FILE", None)

    if hosts_file:
        host_rows = load_host_table(os.path.expanduser(hosts_file))
    else:
        host_rows = build_host_table(
            getattr(config, "HOST_PES", None),
            getattr(config, "HOST_RAM", None),
            getattr(config, "HOST_MIPS", None),
            getattr(config, "HOST_BW", None),
            getattr(config, "HOST_STORAGE", None),
        )
    if vms_file:
        vm_rows = load_vm_table(os.path.expanduser(vms_file))
    else:
        vm_rows = build_vm_table(
            getattr(config, "VM_PES", None),
            getattr(config, "VM_MIPS", None),
            getattr(config, "VM_RAM", None),
            getattr(config, "VM_BW", None),
            getattr(config, "VM_SIZE", None),
            getattr(config, "VM_INITIAL_CPU_UTILIZATION", 1.0),
            getattr(config, "VM_MAX_CPU_UTILIZATION", 1.0),
            getattr(config, "VM_CPU_INCREMENT", 0.0),
            getattr(config, "VM_LENGTH", None),
        )

    pms = generate_pms(host_rows, getattr(config, "HOST_HISTORY_ENABLED", False))
    vms = generate_vms(vm_rows)

    over_threshold = getattr(config, "OVER_UTILIZATION_THRESHOLD", 0.7)
    initial_margin = getattr(config, "INITIAL_OVER_UTILIZATION_MARGIN", 0.0) or 0.0
    policy = create_migration_policy(
        getattr(config, "UNDER_UTILIZATION_THRESHOLD", 0.1),
        min(over_threshold + initial_margin, 1.0),
        getattr(config, "VM_SELECTION_POLICY", "minimum_utilization"),
        getattr(config, "HOST_SELECTION_POLICY", "best_fit"),
        getattr(config, "HOST_SEARCH_RETRY_DELAY", 60),
    )
    # Fail before the clock starts if the tightened threshold is invalid
    check_thresholds(policy["under_threshold"], over_threshold)

    log_folder_path = None
    if getattr(config, "SAVE_LOGS", False):
        log_folder_path = create_log_folder(getattr(config, "LOGS_FOLDER_PATH", "logs"))

    sim = Simulation(
        pms,
        policy,
        scheduling_interval=getattr(config, "SCHEDULING_INTERVAL", 1),
        bandwidth_percent=getattr(config, "BANDWIDTH_PERCENT_FOR_MIGRATION", 0.5),
        cpu_overhead=getattr(config, "MIGRATION_CPU_OVERHEAD", 0.1),
        vm_creation_retries=getattr(config, "VM_CREATION_RETRIES", None),
        check_invariants=getattr(config, "CHECK_INVARIANTS", True),
        print_to_console=getattr(config, "PRINT_TO_CONSOLE", True),
        log_folder_path=log_folder_path,
    )

    def on_vms_created(info):
        sim.set_over_utilization_threshold(over_threshold)
        log_event(
            info.time,
            f"All VMs created, over utilization threshold set to {over_threshold:.2f}",
            Fore.YELLOW,
            sim.print_to_console,
        )
        sim.remove_listener(ON_VMS_CREATED, on_vms_created)

    def on_migration_start(info):
        log_vm_allocation(info.time, info.vm, info.source_pm, sim.print_to_console)
        log_host_allocation(info.time, info.source_pm, sim.print_to_console)
        log_host_allocation(info.time, info.target_pm, sim.print_to_console)

    def on_migration_finish(info):
        log_host_allocation(info.time, info.source_pm, sim.print_to_console)
        log_host_allocation(info.time, info.target_pm, sim.print_to_console)

    sim.add_listener(ON_VMS_CREATED, on_vms_created)
    if sim.print_to_console:
        sim.add_listener(ON_MIGRATION_START, on_migration_start)
        sim.add_listener(ON_MIGRATION_FINISH, on_migration_finish)
    sim.submit_vm_list(vms)
    return sim


def main(argv=None):
    args = parse_arguments(argv)
    total_start_time = time.time()  # Record the start time

    try:
        config = load_config(args.config)
        sim = build_simulation(config, args.hosts, args.vms)
    except ConfigurationError as e:
        print(color_text(f"Configuration error: {e}", Fore.RED))
        return 1

    until = args.until if args.until is not None else getattr(config, "SIMULATION_TIME_LIMIT", None)
    log_initial_physical_machines(sim.pms, sim.print_to_console)
    sim.run(until)
    sim.write_logs()

    total_execution_time = time.time() - total_start_time
    if sim.print_to_console:
        print(f"Total execution time: {total_execution_time:.3f} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
