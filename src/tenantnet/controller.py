from dataclasses import dataclass
from pathlib import Path

from rich.console import Console
from rich.table import Table

from tenantnet.config import transcripts_root, validate_config
from tenantnet.network import AddressRange, AddressRangeCalculator, InvalidPoolStart
from tenantnet.transcripts import ArchiveResult, TranscriptArchiver
from tenantnet.vmm import VmmError, VmmManager

console = Console()


@dataclass
class ProvisionRequest:
    network_name: str
    subnet: str
    mask: str
    subnet_name: str
    dns_server: str
    vm_names: list[str]


class TenantController:
    """Orchestrates tenant network provisioning and transcript housekeeping."""

    def __init__(self, config: dict):
        self.config = config

    def calc(self, address: str, mask: str) -> AddressRange:
        """Compute and print the address range for a subnet."""
        address_range = AddressRangeCalculator.compute(address, mask)
        self._print_range(address_range)
        return address_range

    def provision(self, request: ProvisionRequest, dry_run: bool = False) -> AddressRange:
        """Create the VM network, subnet, IP pool, VM attachments and NAT, in that order."""
        validate_config(self.config)

        # Nothing is sent to VMM until the range is known to be valid
        address_range = AddressRangeCalculator.compute(request.subnet, request.mask)
        self._print_range(address_range)
        if not address_range.range_start_is_valid:
            message = f"Pool start {address_range.range_start} is not a valid IPv4 address"
            if not dry_run:
                raise InvalidPoolStart(message)
            console.print(f"[bold yellow]Warning:[/bold yellow] {message}")

        vmm = VmmManager(
            self.config["vmm_server"],
            powershell=self.config.get("powershell", "pwsh"),
            dry_run=dry_run,
        )
        net = request.network_name
        steps = [
            (f"VM network {net}",
             lambda: vmm.create_vm_network(net, self.config["logical_network"])),
            (f"VM subnet {request.subnet_name} ({address_range.network_cidr})",
             lambda: vmm.create_vm_subnet(net, request.subnet_name, address_range.network_cidr)),
            (f"IP pool {address_range.range_start} - {address_range.range_end}",
             lambda: vmm.create_ip_pool(net, request.subnet_name, address_range, request.dns_server)),
        ]
        for vm_name in request.vm_names:
            steps.append((
                f"Attach {vm_name}",
                lambda vm_name=vm_name: vmm.attach_vm(vm_name, net, request.subnet_name),
            ))
        steps.append((
            f"NAT via {self.config['external_ip_pool']}",
            lambda: vmm.create_nat(net, self.config["external_ip_pool"]),
        ))

        completed = []
        for label, step in steps:
            console.print(f"[bold]{label}...[/bold]")
            try:
                step()
            except VmmError:
                console.print(f"\n[bold red]Provisioning failed at:[/bold red] {label}")
                if completed:
                    console.print("[yellow]Already created (not rolled back):[/yellow]")
                    for done in completed:
                        console.print(f"  - {done}")
                raise
            completed.append(label)

        console.print(f"\n[bold green]Tenant network {net} is ready.[/bold green]")
        return address_range

    def archive(self, root: str | None = None, dry_run: bool = False) -> ArchiveResult:
        """Move transcripts under the configured root into Year/Month/Day folders."""
        folder: Path = transcripts_root(self.config, root)
        console.print(f"[bold]Archiving transcripts in:[/bold] {folder}")

        result = TranscriptArchiver(folder).archive(dry_run=dry_run)

        console.print(
            f"[bold green]Moved {len(result.moved)}[/bold green], "
            f"[yellow]skipped {len(result.locked)} locked[/yellow], "
            f"[yellow]{len(result.unparsed)} without timestamp[/yellow], "
            f"[yellow]{len(result.vanished)} vanished[/yellow], "
            f"[red]{len(result.failed)} failed[/red]"
        )
        return result

    def _print_range(self, address_range: AddressRange) -> None:
        table = Table(title="Address Range")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Network", address_range.network_cidr)
        table.add_row("Gateway", address_range.gateway)
        table.add_row("Pool start", address_range.range_start)
        table.add_row("Pool end", address_range.range_end)

        console.print(table)
