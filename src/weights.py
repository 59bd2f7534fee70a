EPSILON = 0.00001

migration = {
    "bandwidth_percent": 0.5,  # Share of the target host BW used to move VM memory
    "cpu_overhead": 0.1,  # CPU share a VM loses on its source host while migrating
}

utilization = {
    "max": 1.0,  # Default cap for utilization models (100%)
}

resources = ["ram", "bw", "storage"]  # Pools reserved on admission
