"""Multipart planning under S3 part limits."""

from dataclasses import dataclass

MIB = 1024 * 1024
GIB = 1024 * MIB

MIN_PART_SIZE = 5 * MIB
PREFERRED_PART_SIZE = 50 * MIB
MAX_PART_SIZE = 5 * GIB
MAX_PART_COUNT = 10_000

# Largest object a plan can cover without exceeding either limit
MAX_MULTIPART_OBJECT_SIZE = MAX_PART_SIZE * MAX_PART_COUNT


@dataclass(frozen=True)
class PartPlan:
    """How a file of a given size is split into parts."""

    part_size: int
    part_count: int
    use_multipart: bool


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def plan(file_size: int, preferred_part_size: int = PREFERRED_PART_SIZE) -> PartPlan:
    """Compute part size and count for ``file_size`` bytes.

    The part-count ceiling is corrected before the size bounds, and the
    minimum part size is applied last so it always wins.

    Args:
        file_size: Size of the file in bytes
        preferred_part_size: Starting part size before any clamping

    Returns:
        PartPlan for the file

    Raises:
        ValueError: If file_size is negative or larger than
            MAX_MULTIPART_OBJECT_SIZE
    """
    if file_size < 0:
        raise ValueError(f"file_size must be non-negative, got {file_size}")
    if file_size > MAX_MULTIPART_OBJECT_SIZE:
        raise ValueError(
            f"file_size {file_size} exceeds the multipart maximum of {MAX_MULTIPART_OBJECT_SIZE}"
        )

    part_size = preferred_part_size
    part_count = _ceil_div(file_size, part_size)

    if part_count > MAX_PART_COUNT:
        part_size = _ceil_div(file_size, MAX_PART_COUNT)
        part_count = MAX_PART_COUNT

    if part_size > MAX_PART_SIZE:
        part_size = MAX_PART_SIZE
        part_count = _ceil_div(file_size, part_size)

    if part_size < MIN_PART_SIZE:
        part_size = MIN_PART_SIZE
        part_count = _ceil_div(file_size, part_size)

    return PartPlan(
        part_size=part_size,
        part_count=part_count,
        use_multipart=file_size > MIN_PART_SIZE and part_count > 1,
    )
