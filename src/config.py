import os

# General
PRINT_TO_CONSOLE = True
SAVE_LOGS = True
CHECK_INVARIANTS = True

# Simulation parameters
SCHEDULING_INTERVAL = 1  # Seconds between two host utilization updates, <= 0 disables ticks
SIMULATION_TIME_LIMIT = None  # Stop dispatching events after this time (None runs to completion)

# Migration policy
UNDER_UTILIZATION_THRESHOLD = 0.1
OVER_UTILIZATION_THRESHOLD = 0.7
# Extra margin on the over threshold while the initial VMs are being placed
INITIAL_OVER_UTILIZATION_MARGIN = 0.2
HOST_SEARCH_RETRY_DELAY = 60  # Seconds before searching a host again after a failure
VM_CREATION_RETRIES = 5  # None retries until a host is found

VM_SELECTION_POLICY = "minimum_utilization"
# VM_SELECTION_POLICY = "maximum_utilization"
# VM_SELECTION_POLICY = "minimum_migration_time"

HOST_SELECTION_POLICY = "best_fit"
# HOST_SELECTION_POLICY = "first_fit"
# HOST_SELECTION_POLICY = "worst_fit"

BANDWIDTH_PERCENT_FOR_MIGRATION = 0.5
MIGRATION_CPU_OVERHEAD = 0.1

# Hosts
HOST_PES = [4, 5, 5]  # One entry per host
HOST_RAM = [15000, 500000, 25000]
HOST_MIPS = 1000  # MIPS of each PE
HOST_BW = 16000
HOST_STORAGE = 1000000
HOST_HISTORY_ENABLED = True

# VMs
VM_PES = [2, 2, 2, 1]  # One entry per VM
VM_MIPS = 1000
VM_RAM = 10000
VM_BW = HOST_BW // 4
VM_SIZE = 1000
VM_INITIAL_CPU_UTILIZATION = [0.8, 0.8, 0.8, 0.2]
VM_MAX_CPU_UTILIZATION = 1.0
VM_CPU_INCREMENT = 0.04  # Utilization added per second
VM_LENGTH = 20000  # MI to execute per PE, None runs until the time limit

# Paths
BASE_PATH = ""
HOSTS_FILE = None  # CSV with columns pes, pe_mips, ram, bw, storage
VMS_FILE = None  # CSV with columns pes, pe_mips, ram, bw, storage[, initial_cpu, max_cpu, cpu_increment, length]
LOGS_FOLDER_PATH = os.path.join(BASE_PATH, "logs")
