import ipaddress
from dataclasses import dataclass


ADDRESS_BITS = 32
ALL_ONES = (1 << ADDRESS_BITS) - 1


class NetworkError(Exception):
    pass


class AddressRangeError(NetworkError):
    pass


class InvalidAddress(AddressRangeError):
    pass


class InvalidMask(AddressRangeError):
    pass


class InvalidPoolStart(AddressRangeError):
    pass


def _parse(value: str, error: type[AddressRangeError], label: str) -> int:
    try:
        return int(ipaddress.IPv4Address(value.strip()))
    except (ipaddress.AddressValueError, AttributeError):
        raise error(f"Invalid {label} '{value}': expected four octets 0-255")


def _format(value: int) -> str:
    return str(ipaddress.IPv4Address(value))


def prefix_length(mask: str) -> int:
    """Return the prefix length of a contiguous subnet mask.

    The prefix length is the position of the first 0-bit counting from the
    most significant bit. Any 1-bit after it makes the mask invalid, as does
    a mask with no 0-bit at all (255.255.255.255 leaves no host addresses).
    """
    bits = _parse(mask, InvalidMask, "subnet mask")

    length = 0
    while length < ADDRESS_BITS and bits & (1 << (ADDRESS_BITS - 1 - length)):
        length += 1

    if length == ADDRESS_BITS:
        raise InvalidMask(f"Subnet mask '{mask}' leaves no host addresses")

    host_bits = ALL_ONES >> length
    if bits & host_bits:
        raise InvalidMask(f"Subnet mask '{mask}' is not a contiguous prefix")
    return length


def literal_range_start(gateway: str) -> str:
    """Build the pool start address by appending the digit 3 to the gateway's last octet.

    Gateway 10.0.0.1 gives 10.0.0.13, gateway 10.0.0.12 gives 10.0.0.123 and
    gateway 10.0.0.65 gives 10.0.0.653. This is string concatenation, not
    gateway + 3, and can produce octets above 255. Existing pools were created
    with this rule, so it is kept until a corrected start is signed off.
    """
    head, _, last = gateway.rpartition(".")
    return f"{head}.{last}3"


@dataclass(frozen=True)
class AddressRange:
    """Network, gateway and static pool bounds for one subnet."""

    network_cidr: str
    prefix_length: int
    gateway: str
    range_start: str
    range_end: str

    @property
    def range_start_is_valid(self) -> bool:
        try:
            ipaddress.IPv4Address(self.range_start)
        except ipaddress.AddressValueError:
            return False
        return True


class AddressRangeCalculator:
    """Derives the subnet CIDR, gateway and IP pool range from an address and mask."""

    @staticmethod
    def compute(address: str, mask: str) -> AddressRange:
        """Compute the AddressRange for an (address, mask) pair.

        Raises InvalidAddress or InvalidMask before anything else runs.
        """
        addr = _parse(address, InvalidAddress, "address")
        length = prefix_length(mask)

        netmask = ALL_ONES ^ (ALL_ONES >> length)
        network = addr & netmask
        broadcast = network | (ALL_ONES >> length)
        gateway = _format(network | 1)

        return AddressRange(
            network_cidr=f"{_format(network)}/{length}",
            prefix_length=length,
            gateway=gateway,
            range_start=literal_range_start(gateway),
            range_end=_format(broadcast - 1),
        )


def compute(address: str, mask: str) -> AddressRange:
    return AddressRangeCalculator.compute(address, mask)
