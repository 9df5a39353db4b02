import operator


__all__ = ["check_ports", "to_binary", "to_bits", "from_bits"]


def check_ports(ports):
    if not isinstance(ports, int) or isinstance(ports, bool) or ports < 2:
        raise ValueError("Port count must be an integer greater than 1, not {!r}"
                         .format(ports))
    return ports


def to_binary(n: int, width: int) -> str:
    """Formats ``n`` as exactly ``width`` binary digits, most significant bit first."""
    n = operator.index(n)
    width = operator.index(width)
    if n not in range(1 << width):
        raise ValueError(f"{n} does not fit in {width} bits")
    if width == 0:
        return ""
    return f"{n:0{width}b}"


def to_bits(mask: int, width: int) -> "tuple[bool, ...]":
    """Unpacks ``mask`` into ``width`` booleans, bit 0 first."""
    mask = operator.index(mask)
    if mask not in range(1 << width):
        raise ValueError(f"{mask} does not fit in {width} bits")
    return tuple(bool(mask & (1 << index)) for index in range(width))


def from_bits(bits) -> int:
    mask = 0
    for index, bit in enumerate(bits):
        if bit:
            mask |= 1 << index
    return mask
