import pytest

from allocation import allocate_vm_on_pm
from calculate import calculate_requested_mips
from data_generator import create_pm
from policy import create_migration_policy
from simulation import Simulation
from vm_generator import create_cpu_utilization_model, create_vm


@pytest.fixture
def make_pm():
    def _make_pm(pm_id, pes=4, pe_mips=1000, ram=10000, bw=16000, storage=1000000, history=False):
        return create_pm(pm_id, pes, pe_mips, ram, bw, storage, history_enabled=history)

    return _make_pm


@pytest.fixture
def make_vm():
    def _make_vm(
        vm_id,
        pes=2,
        cpu=0.8,
        ram=2000,
        bw=1000,
        storage=1000,
        length=None,
        max_cpu=1.0,
        increment=0.0,
    ):
        cpu_model = create_cpu_utilization_model(cpu, max(cpu, max_cpu), increment)
        return create_vm(vm_id, pes, 1000, ram, bw, storage, cpu_model=cpu_model, length=length)

    return _make_vm


@pytest.fixture
def make_simulation():
    def _make_simulation(
        pms,
        under=0.1,
        over=0.7,
        vm_selection="minimum_utilization",
        host_selection="best_fit",
        retry_delay=60,
        **kwargs,
    ):
        policy = create_migration_policy(under, over, vm_selection, host_selection, retry_delay)
        return Simulation({pm["id"]: pm for pm in pms}, policy, **kwargs)

    return _make_simulation


@pytest.fixture
def place_vm():
    """Put a VM on a given host at the current clock, bypassing host selection."""

    def _place_vm(sim, vm, pm_id):
        pm = sim.pms[pm_id]
        sim.vms[vm["id"]] = vm
        calculate_requested_mips(vm, sim.clock)
        allocate_vm_on_pm(vm, pm)
        vm["created_time"] = sim.clock
        vm["workload"]["last_update"] = sim.clock
        sim.active_vms[vm["id"]] = vm
        sim.update_pm_processing(pm)
        return vm

    return _place_vm
