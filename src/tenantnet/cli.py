import click
from rich.console import Console
from rich.table import Table

from tenantnet import __version__
from tenantnet.config import ConfigError, load_config, write_scaffold
from tenantnet.controller import ProvisionRequest, TenantController
from tenantnet.network import NetworkError
from tenantnet.transcripts import ArchiveError
from tenantnet.vmm import VmmError

console = Console()


def handle_errors(fn):
    """Decorator to catch and display common errors."""
    import functools

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (ConfigError, NetworkError, VmmError, ArchiveError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise SystemExit(1)

    return wrapper


config_option = click.option(
    "--config", "config_path", default=None, type=click.Path(dir_okay=False),
    help="Settings file (default: ./tenantnet.yml)",
)


@click.group()
@click.version_option(version=__version__, prog_name="tenantnet")
def cli():
    """Tenantnet - Provision tenant VM networks and archive transcripts."""
    pass


@cli.command()
@click.option("-a", "--address", required=True, help="Any address in the subnet")
@click.option("-m", "--mask", required=True, help="Subnet mask, e.g. 255.255.255.0")
@handle_errors
def calc(address, mask):
    """Show the CIDR, gateway and IP pool range for a subnet."""
    TenantController({}).calc(address, mask)


@cli.command()
@click.option("-n", "--network-name", required=True, help="Name of the tenant VM network")
@click.option("-s", "--subnet", required=True, help="Subnet address, e.g. 10.10.10.0")
@click.option("-m", "--mask", required=True, help="Subnet mask, e.g. 255.255.255.0")
@click.option("--subnet-name", required=True, help="Name of the VM subnet")
@click.option("--dns", "dns_server", required=True, help="DNS server for the IP pool")
@click.option("--vm", "vm_names", multiple=True, required=True, help="VM to attach (repeatable)")
@click.option("--dry-run", is_flag=True, help="Print the VMM commands without running them")
@config_option
@handle_errors
def provision(network_name, subnet, mask, subnet_name, dns_server, vm_names, dry_run, config_path):
    """Create a tenant network with NAT and attach VMs to it."""
    controller = TenantController(load_config(config_path))
    request = ProvisionRequest(
        network_name=network_name,
        subnet=subnet,
        mask=mask,
        subnet_name=subnet_name,
        dns_server=dns_server,
        vm_names=list(vm_names),
    )
    controller.provision(request, dry_run=dry_run)


@cli.command()
@click.option("-r", "--root", default=None, help="Transcripts folder (overrides transcripts_root)")
@click.option("--dry-run", is_flag=True, help="Show what would be moved")
@config_option
@handle_errors
def archive(root, dry_run, config_path):
    """Move transcripts into Year/Month/Day folders, skipping files in use."""
    controller = TenantController(load_config(config_path))
    result = controller.archive(root, dry_run=dry_run)

    if result.locked:
        table = Table(title="Skipped (in use)")
        table.add_column("File", style="yellow")
        for path in result.locked:
            table.add_row(path.name)
        console.print(table)


@cli.command()
@click.argument("path")
@handle_errors
def init(path):
    """Scaffold a tenantnet settings file."""
    from pathlib import Path

    target = Path(path)
    if target.exists():
        console.print(f"[bold red]File already exists:[/bold red] {target}")
        raise SystemExit(1)

    write_scaffold(target)

    console.print(f"[bold green]Created settings file:[/bold green] {target}")
    console.print(f"Edit the file, then run: [bold]tenantnet provision --config {path} ...[/bold]")
