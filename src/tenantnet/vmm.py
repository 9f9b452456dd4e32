import subprocess

from rich.console import Console
from rich.markup import escape

from tenantnet.network import AddressRange

console = Console()


class VmmError(Exception):
    pass


# PowerShell treats the curly single quotes as string delimiters too
SINGLE_QUOTES = "'\u2018\u2019\u201a\u201b"


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    escaped = "".join(c + c if c in SINGLE_QUOTES else c for c in str(value))
    return "'" + escaped + "'"


class VmmManager:
    """Thin wrapper around VMM PowerShell cmdlet calls."""

    def __init__(self, server: str, powershell: str = "pwsh", dry_run: bool = False):
        self.server = server
        self.powershell = powershell
        self.dry_run = dry_run

    def _base_cmd(self) -> list[str]:
        return [self.powershell, "-NoProfile", "-NonInteractive", "-Command"]

    def _script(self, body: list[str]) -> str:
        lines = [
            "$ErrorActionPreference = 'Stop'",
            f"Get-SCVMMServer -ComputerName {ps_quote(self.server)} | Out-Null",
        ]
        return "; ".join(lines + body)

    def _run(self, body: list[str]) -> str:
        script = self._script(body)
        if self.dry_run:
            console.print(f"[dim]{escape(script)}[/dim]")
            return ""

        cmd = self._base_cmd() + [script]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.strip() if e.stderr else ""
            raise VmmError(f"Command failed: {body[-1]}\n{stderr}") from e
        except FileNotFoundError:
            raise VmmError(
                f"PowerShell executable '{self.powershell}' is not installed or not in PATH"
            )
        return result.stdout

    def create_vm_network(self, name: str, logical_network: str) -> None:
        """Create an isolated tenant VM network on a logical network."""
        self._run([
            f"$logical = Get-SCLogicalNetwork -Name {ps_quote(logical_network)}",
            f"New-SCVMNetwork -Name {ps_quote(name)} -LogicalNetwork $logical "
            "-IsolationType 'WindowsNetworkVirtualization' "
            "-CAIPAddressPoolType 'IPV4' -PAIPAddressPoolType 'IPV4' | Out-Null",
        ])

    def create_vm_subnet(self, vm_network: str, subnet_name: str, network_cidr: str) -> None:
        """Create a VM subnet for the given CIDR inside a VM network."""
        self._run([
            f"$net = Get-SCVMNetwork -Name {ps_quote(vm_network)}",
            f"$vlan = New-SCSubnetVLan -Subnet {ps_quote(network_cidr)}",
            f"New-SCVMSubnet -Name {ps_quote(subnet_name)} -VMNetwork $net "
            "-SubnetVLan $vlan | Out-Null",
        ])

    def create_ip_pool(
        self,
        vm_network: str,
        subnet_name: str,
        address_range: AddressRange,
        dns_server: str,
    ) -> None:
        """Create the static IP address pool for a VM subnet."""
        self._run([
            f"$net = Get-SCVMNetwork -Name {ps_quote(vm_network)}",
            f"$subnet = Get-SCVMSubnet -VMNetwork $net -Name {ps_quote(subnet_name)}",
            f"$gateway = New-SCDefaultGateway -IPAddress {ps_quote(address_range.gateway)} -Automatic",
            f"New-SCStaticIPAddressPool -Name {ps_quote(subnet_name + ' Pool')} "
            f"-VMSubnet $subnet -Subnet {ps_quote(address_range.network_cidr)} "
            f"-IPAddressRangeStart {ps_quote(address_range.range_start)} "
            f"-IPAddressRangeEnd {ps_quote(address_range.range_end)} "
            f"-DefaultGateway $gateway -DNSServer {ps_quote(dns_server)} | Out-Null",
        ])

    def attach_vm(self, vm_name: str, vm_network: str, subnet_name: str) -> None:
        """Connect a VM's network adapter to a VM subnet."""
        self._run([
            f"$net = Get-SCVMNetwork -Name {ps_quote(vm_network)}",
            f"$subnet = Get-SCVMSubnet -VMNetwork $net -Name {ps_quote(subnet_name)}",
            f"$vm = Get-SCVirtualMachine -Name {ps_quote(vm_name)}",
            "if (-not $vm) { throw 'Virtual machine not found' }",
            "$adapter = Get-SCVirtualNetworkAdapter -VM $vm | Select-Object -First 1",
            "Set-SCVirtualNetworkAdapter -VirtualNetworkAdapter $adapter "
            "-VMNetwork $net -VMSubnet $subnet | Out-Null",
        ])

    def create_nat(self, vm_network: str, external_pool: str) -> None:
        """Create an outbound NAT connection bound to an external IP pool."""
        self._run([
            f"$net = Get-SCVMNetwork -Name {ps_quote(vm_network)}",
            f"$pool = Get-SCStaticIPAddressPool -Name {ps_quote(external_pool)}",
            "$gw = Get-SCNetworkGateway | Select-Object -First 1",
            f"$conn = Add-SCNATConnection -Name {ps_quote(vm_network + ' NAT')} "
            "-VMNetworkGateway (Add-SCVMNetworkGateway -Name "
            f"{ps_quote(vm_network + ' Gateway')} -EnableBGP $false "
            "-NetworkGateway $gw -VMNetwork $net) -ExternalIPPool $pool",
            "if (-not $conn) { throw 'NAT connection was not created' }",
        ])
